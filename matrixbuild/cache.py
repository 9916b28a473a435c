import hashlib
import logging
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    features: str
    target: str

    @property
    def digest(self) -> str:
        return hashlib.sha256(f"{self.target}\n{self.features}".encode("utf-8")).hexdigest()[:16]


class BuildCache:
    """Per-configuration cargo target directories.

    One directory per (feature string, target triple). Each key has its own
    lock so two builds of the same configuration never share an entry at the
    same time, while different keys proceed in parallel.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: CacheKey) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key.digest, threading.Lock())

    def path_for(self, key: CacheKey) -> Path:
        return self.root / key.digest

    @contextmanager
    def entry(self, key: CacheKey) -> Iterator[Path]:
        with self._lock_for(key):
            path = self.path_for(key)
            path.mkdir(parents=True, exist_ok=True)
            yield path

    def finalize(self, key: CacheKey, succeeded: bool, keep_on_failure: bool) -> bool:
        """Keep the entry if the build succeeded or failures are cached for this key.

        Returns True when the entry was kept.
        """
        if succeeded or keep_on_failure:
            return True
        path = self.path_for(key)
        logger.info(f"Discarding cache entry {key.digest} for failed build '{key.features}'")
        shutil.rmtree(path, ignore_errors=True)
        return False
