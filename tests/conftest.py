from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import pytest
import yaml

from matrixbuild.engine.assembly import assemble
from matrixbuild.reporting.findings import LintFinding
from matrixbuild.toolchains.base import LintResult, StepResult, Toolchain
from matrixbuild.toolchains.cargo import TOOLCHAIN_STRATEGIES
from matrixbuild.validation.definition import validate_definition_data

PROJECT_ROOT = Path(__file__).parent.parent
DEFINITION_PATH = PROJECT_ROOT / "config_sources" / "firmware_matrix.yaml"


@pytest.fixture
def definition_data() -> Dict:
    with open(DEFINITION_PATH) as f:
        return yaml.safe_load(f)


@pytest.fixture
def definition(definition_data):
    return validate_definition_data(definition_data)


@pytest.fixture
def context(definition):
    return assemble(definition, known_toolchains=TOOLCHAIN_STRATEGIES)


class FakeToolchain(Toolchain):
    """Records invocations and fails for configurations whose features match ``fail_on``."""

    def __init__(
        self,
        variant: str,
        fail_on: Sequence[str] = (),
        crash_on: Sequence[str] = (),
        findings: Optional[List[LintFinding]] = None,
    ):
        super().__init__(Path("."))
        self.variant = variant
        self.fail_on = set(fail_on)
        self.crash_on = set(crash_on)
        self.findings = findings or []
        self.calls: List[tuple] = []

    def lint(self, target: str, features: Sequence[str], env: Optional[Mapping[str, str]] = None) -> LintResult:
        self.calls.append(("lint", target, tuple(features), dict(env or {})))
        if self.crash_on & set(features):
            return LintResult(returncode=None, completed=False, stderr="toolchain crashed")
        return LintResult(returncode=0, output="", findings=list(self.findings))

    def build(self, target: str, features: Sequence[str], env: Optional[Mapping[str, str]] = None) -> StepResult:
        self.calls.append(("build", target, tuple(features), dict(env or {})))
        if self.fail_on & set(features):
            return StepResult(returncode=101, stderr="error: could not compile `firmware`")
        return StepResult(returncode=0)

    def check_format(self) -> StepResult:
        return StepResult(returncode=0)


@pytest.fixture
def fake_toolchains():
    def _make(fail_on: Sequence[str] = (), crash_on: Sequence[str] = (), findings=None):
        return {
            variant: FakeToolchain(variant, fail_on=fail_on, crash_on=crash_on, findings=findings)
            for variant in TOOLCHAIN_STRATEGIES
        }
    return _make
