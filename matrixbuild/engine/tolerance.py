from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from matrixbuild.engine.resolver import Configuration


@dataclass(frozen=True)
class ToleranceEntry:
    selection: Tuple[Tuple[str, str], ...]
    reason: str = ""


class ToleranceClassifier:
    """Soft-fail allowlist: configurations whose failure must not fail the run."""

    def __init__(self, entries: Iterable[ToleranceEntry] = ()):
        self.entries: List[ToleranceEntry] = list(entries)

    def _match(self, configuration: Configuration) -> Optional[ToleranceEntry]:
        for entry in self.entries:
            if configuration.matches(dict(entry.selection)):
                return entry
        return None

    def is_tolerated(self, configuration: Configuration) -> bool:
        return self._match(configuration) is not None

    def reason_for(self, configuration: Configuration) -> Optional[str]:
        entry = self._match(configuration)
        return entry.reason if entry else None
