from __future__ import annotations

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from matrixbuild.cache import BuildCache, CacheKey
from matrixbuild.engine.assembly import MatrixContext
from matrixbuild.engine.features import FeatureSet
from matrixbuild.engine.resolver import Configuration
from matrixbuild.errors import BuildFailure, ConfigurationError, ReportingError, ToleratedFailure
from matrixbuild.reporting.findings import LintFinding, rewrite_findings
from matrixbuild.reporting.publisher import ReportPublisher
from matrixbuild.toolchains.base import StepResult, Toolchain

logger = logging.getLogger(__name__)

# Lines of stderr kept on a failure for the report.
_FAILURE_TAIL_LINES = 20


class OutcomeStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED_FATAL = "failed_fatal"
    FAILED_TOLERATED = "failed_tolerated"


@dataclass
class BuildOutcome:
    configuration: Configuration
    feature_set: FeatureSet
    target: str
    toolchain: str
    tolerated: bool = False
    tolerance_reason: Optional[str] = None
    status: OutcomeStatus = OutcomeStatus.PENDING
    findings: List[LintFinding] = field(default_factory=list)
    lint_completed: bool = False
    failure: Optional[BuildFailure] = None
    reporting_error: Optional[str] = None

    @property
    def category(self) -> str:
        return self.feature_set.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "configuration": self.configuration.as_dict(),
            "features": list(self.feature_set.tokens),
            "target": self.target,
            "toolchain": self.toolchain,
            "status": self.status.value,
            "tolerated": self.tolerated,
            "tolerance_reason": self.tolerance_reason,
            "failure": str(self.failure) if self.failure else None,
            "reporting_error": self.reporting_error,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass
class RunReport:
    outcomes: List[BuildOutcome]
    format_check: Optional[StepResult] = None

    @property
    def fatal(self) -> List[BuildOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED_FATAL]

    @property
    def tolerated_failures(self) -> List[BuildOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED_TOLERATED]

    @property
    def passed(self) -> bool:
        if self.format_check is not None and not self.format_check.ok:
            return False
        return not self.fatal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "format_check": None if self.format_check is None else self.format_check.ok,
            "total": len(self.outcomes),
            "fatal": len(self.fatal),
            "tolerated_failures": len(self.tolerated_failures),
            "configurations": {
                o.category: {
                    "status": o.status.value,
                    "tolerated": o.tolerated,
                    "findings": len(o.findings),
                    "target": o.target,
                }
                for o in self.outcomes
            },
        }


def _tail(text: str, lines: int = _FAILURE_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class ExecutionReporter:
    """Runs lint and build for each configuration and publishes keyed outcomes.

    Every configuration is attempted once. A failure is fatal to the run
    unless the tolerance classifier allows it, in which case it is recorded
    as tolerated and stays visible in the published report.
    """

    def __init__(
        self,
        context: MatrixContext,
        toolchains: Mapping[str, Toolchain],
        publisher: Optional[ReportPublisher] = None,
        cache: Optional[BuildCache] = None,
        workers: int = 1,
        working_dir: Optional[Path] = None,
    ):
        self.context = context
        self.toolchains = dict(toolchains)
        self.publisher = publisher
        self.cache = cache
        self.workers = max(1, workers)
        self.working_dir = working_dir
        self.path_prefix = context.definition.reporting.path_prefix

    def prepare(self, configuration: Configuration) -> BuildOutcome:
        classifier = self.context.classifier
        return BuildOutcome(
            configuration=configuration,
            feature_set=self.context.feature_set(configuration),
            target=self.context.target_of(configuration) or "",
            toolchain=self.context.toolchain_of(configuration) or "",
            tolerated=classifier.is_tolerated(configuration),
            tolerance_reason=classifier.reason_for(configuration),
        )

    def _invoke(self, outcome: BuildOutcome, env: Dict[str, str]) -> None:
        toolchain = self.toolchains[outcome.toolchain]
        tokens = list(outcome.feature_set.tokens)

        lint = toolchain.lint(outcome.target, tokens, env)
        outcome.lint_completed = lint.completed
        if not lint.completed:
            raise BuildFailure(outcome.category, "lint", lint.returncode, _tail(lint.stderr))
        outcome.findings = list(lint.findings)

        build = toolchain.build(outcome.target, tokens, env)
        if not build.ok:
            raise BuildFailure(outcome.category, "build", build.returncode, _tail(build.stderr))

    def _run_steps(self, outcome: BuildOutcome) -> None:
        if self.cache is None:
            self._invoke(outcome, {})
            return
        key = CacheKey(features=outcome.category, target=outcome.target)
        with self.cache.entry(key) as target_dir:
            succeeded = False
            try:
                self._invoke(outcome, {"CARGO_TARGET_DIR": str(target_dir)})
                succeeded = True
            finally:
                self.cache.finalize(key, succeeded, keep_on_failure=outcome.tolerated)

    def _rewrite(self, outcome: BuildOutcome) -> bool:
        try:
            outcome.findings = rewrite_findings(outcome.findings, self.path_prefix, self.working_dir)
            return True
        except ReportingError as e:
            outcome.reporting_error = str(e)
            logger.error(f"❌ Could not rewrite findings for '{outcome.category}': {e}")
            return False

    def _publish(self, outcome: BuildOutcome, rewritten: bool) -> None:
        if self.publisher is None:
            return
        try:
            if outcome.lint_completed and rewritten:
                self.publisher.publish_findings(outcome)
            self.publisher.publish_report(outcome)
        except ReportingError as e:
            outcome.reporting_error = str(e)
            logger.error(f"❌ Publishing failed for '{outcome.category}': {e}")

    def _record_failure(self, outcome: BuildOutcome, failure: BuildFailure) -> None:
        if outcome.tolerated:
            outcome.failure = ToleratedFailure(failure, outcome.tolerance_reason or "")
            outcome.status = OutcomeStatus.FAILED_TOLERATED
            logger.warning(f"⚠️ {outcome.category}: tolerated failure: {failure}")
        else:
            outcome.failure = failure
            outcome.status = OutcomeStatus.FAILED_FATAL
            logger.error(f"❌ {outcome.category}: {failure}")

    def execute(self, outcome: BuildOutcome) -> BuildOutcome:
        outcome.status = OutcomeStatus.RUNNING
        logger.info(f"▶ {outcome.configuration.label()} [{outcome.target}, {outcome.toolchain}]")
        try:
            self._run_steps(outcome)
            outcome.status = OutcomeStatus.PASSED
            logger.info(f"✅ {outcome.category}: passed ({len(outcome.findings)} findings)")
        except BuildFailure as failure:
            self._record_failure(outcome, failure)
        except Exception as e:
            # Cache or toolchain infrastructure errors fail only this configuration.
            logger.debug(f"Setup error for '{outcome.category}'", exc_info=True)
            self._record_failure(outcome, BuildFailure(outcome.category, "setup", None, str(e)))

        rewritten = self._rewrite(outcome) if outcome.lint_completed else False
        self._publish(outcome, rewritten)
        return outcome

    def _check_toolchains(self, outcomes: Iterable[BuildOutcome]) -> None:
        missing = sorted({o.toolchain for o in outcomes if o.toolchain not in self.toolchains})
        if missing:
            raise ConfigurationError(f"No toolchain available for variants: {missing}")

    def run(self, configurations: Iterable[Configuration]) -> RunReport:
        outcomes = [self.prepare(c) for c in configurations]
        self._check_toolchains(outcomes)
        workers = min(self.workers, len(outcomes)) if outcomes else 1
        logger.info(f"Running {len(outcomes)} configurations with {workers} worker(s)")

        if workers <= 1:
            for outcome in outcomes:
                self.execute(outcome)
        else:
            executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="matrix")
            interrupted = False
            try:
                futures = [executor.submit(self.execute, o) for o in outcomes]
                for future in futures:
                    future.result()
            except KeyboardInterrupt:
                interrupted = True
                logger.warning("Run aborted; cancelling pending configurations.")
                raise
            finally:
                executor.shutdown(wait=not interrupted, cancel_futures=True)

        report = RunReport(outcomes=outcomes)
        self.summarize(report)
        return report

    def summarize(self, report: RunReport) -> None:
        passed = sum(1 for o in report.outcomes if o.status == OutcomeStatus.PASSED)
        logger.info(
            f"Matrix finished: {passed} passed, {len(report.fatal)} failed, "
            f"{len(report.tolerated_failures)} tolerated failures"
        )
        for outcome in report.tolerated_failures:
            logger.warning(f"   tolerated: {outcome.category} ({outcome.tolerance_reason or 'no reason given'})")
        for outcome in report.fatal:
            logger.error(f"   failed: {outcome.category}")
