from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from matrixbuild.reporting.findings import LintFinding

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Result of one external invocation.

    ``completed`` is False when the tool never produced output (missing
    binary, killed by a signal). ``returncode`` is None when the binary
    could not be started.
    """

    returncode: Optional[int]
    output: str = ""
    completed: bool = True
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.completed and self.returncode == 0


@dataclass
class LintResult(StepResult):
    findings: List[LintFinding] = field(default_factory=list)


class Toolchain(ABC):
    """Common invocation contract for every toolchain variant."""

    variant: str = ""

    def __init__(self, working_dir: Path):
        self.working_dir = Path(working_dir)

    @abstractmethod
    def lint(self, target: str, features: Sequence[str], env: Optional[Mapping[str, str]] = None) -> LintResult:
        ...

    @abstractmethod
    def build(self, target: str, features: Sequence[str], env: Optional[Mapping[str, str]] = None) -> StepResult:
        ...

    @abstractmethod
    def check_format(self) -> StepResult:
        ...

    def environment(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ)
        if extra:
            env.update(extra)
        return env

    def run(self, args: Sequence[str], env: Optional[Mapping[str, str]] = None) -> StepResult:
        logger.debug(f"[{self.variant}] $ {' '.join(args)} (cwd={self.working_dir})")
        try:
            proc = subprocess.run(
                list(args),
                cwd=self.working_dir,
                env=self.environment(env),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            logger.error(f"[{self.variant}] could not start '{args[0]}': {e}")
            return StepResult(returncode=None, completed=False, stderr=str(e))
        # Negative return codes mean the process was killed by a signal.
        completed = proc.returncode >= 0
        return StepResult(
            returncode=proc.returncode, output=proc.stdout, completed=completed, stderr=proc.stderr
        )
