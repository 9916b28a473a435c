from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Type

from matrixbuild.errors import ConfigurationError
from matrixbuild.reporting.findings import parse_clippy_messages
from matrixbuild.toolchains.base import LintResult, StepResult, Toolchain

logger = logging.getLogger(__name__)


class CargoToolchain(Toolchain):
    """Default rustup toolchain (RISC-V and ARM Cortex-M targets)."""

    variant = "stable"

    def __init__(self, working_dir: Path, cargo: str = "cargo"):
        super().__init__(working_dir)
        self.cargo = cargo

    def toolchain_env(self) -> Dict[str, str]:
        return {}

    def environment(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = super().environment(self.toolchain_env())
        if extra:
            env.update(extra)
        return env

    def _feature_args(self, target: str, features: Sequence[str]) -> List[str]:
        return ["--target", target, "--no-default-features", "--features", ",".join(features)]

    def lint(self, target: str, features: Sequence[str], env: Optional[Mapping[str, str]] = None) -> LintResult:
        args = [self.cargo, "clippy", *self._feature_args(target, features), "--message-format=json"]
        step = self.run(args, env)
        findings = parse_clippy_messages(step.output.splitlines()) if step.completed else []
        return LintResult(
            returncode=step.returncode,
            output=step.output,
            completed=step.completed,
            stderr=step.stderr,
            findings=findings,
        )

    def build(self, target: str, features: Sequence[str], env: Optional[Mapping[str, str]] = None) -> StepResult:
        return self.run([self.cargo, "build", *self._feature_args(target, features)], env)

    def check_format(self) -> StepResult:
        return self.run([self.cargo, "fmt", "--check", "--all"])


class EspCargoToolchain(CargoToolchain):
    """Xtensa targets, built with the 'esp' rustup toolchain installed by espup."""

    variant = "esp"

    def toolchain_env(self) -> Dict[str, str]:
        # Same effect as `rustup override set esp` without touching the checkout.
        return {"RUSTUP_TOOLCHAIN": "esp"}


TOOLCHAIN_STRATEGIES: Dict[str, Type[CargoToolchain]] = {
    CargoToolchain.variant: CargoToolchain,
    EspCargoToolchain.variant: EspCargoToolchain,
}


def create_toolchain(variant: str, working_dir: Path) -> Toolchain:
    strategy = TOOLCHAIN_STRATEGIES.get(variant)
    if strategy is None:
        raise ConfigurationError(
            f"No toolchain strategy for variant '{variant}'. Known: {sorted(TOOLCHAIN_STRATEGIES)}"
        )
    return strategy(working_dir)


def create_toolchains(variants: Sequence[str], working_dir: Path) -> Dict[str, Toolchain]:
    return {variant: create_toolchain(variant, working_dir) for variant in dict.fromkeys(variants)}
