from __future__ import annotations

from typing import Iterable, List, Optional


class MatrixBuildError(Exception):
    pass


class ConfigurationError(MatrixBuildError):
    """Malformed axis/exclusion/derived definition. Fatal before any build starts."""

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.errors: List[str] = list(errors or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "\n".join(f"  - {e}" for e in self.errors)
        return f"{base}\n{details}"


class DuplicateAxisError(ConfigurationError):
    pass


class UnknownAxisError(ConfigurationError):
    pass


class UnknownMemberError(ConfigurationError):
    pass


class BuildFailure(MatrixBuildError):
    """The external toolchain failed (non-zero exit or crash) for one configuration."""

    def __init__(self, category: str, step: str, returncode: Optional[int], detail: str = ""):
        self.category = category
        self.step = step
        self.returncode = returncode
        self.detail = detail
        msg = f"{step} failed for '{category}' (returncode={returncode})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ToleratedFailure(BuildFailure):
    """A BuildFailure downgraded because the configuration is on the tolerance allowlist."""

    def __init__(self, failure: BuildFailure, reason: str = ""):
        super().__init__(failure.category, failure.step, failure.returncode, failure.detail)
        self.reason = reason


class ReportingError(MatrixBuildError):
    """Findings could not be rewritten or published. Never changes the build outcome."""
