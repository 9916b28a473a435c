import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from matrixbuild.cache import CacheKey
from matrixbuild.engine.assembly import MatrixContext
from matrixbuild.errors import ReportingError

logger = logging.getLogger(__name__)


class GithubMatrixGenerator:
    """Generates a GitHub Actions ``strategy.matrix`` with one include entry per valid configuration."""

    def __init__(self, context: MatrixContext, only: Optional[Dict[str, str]] = None):
        self.context = context
        self.only = only

    def entries(self) -> List[Dict]:
        entries: List[Dict] = []
        for configuration in self.context.configurations(self.only):
            feature_set = self.context.feature_set(configuration)
            target = self.context.target_of(configuration) or ""
            entry: Dict = dict(configuration.as_dict())
            entry["features"] = feature_set.key
            entry["tolerated"] = self.context.classifier.is_tolerated(configuration)
            entry["cache_key"] = CacheKey(features=feature_set.key, target=target).digest
            entries.append(entry)
        return entries

    def generate(self) -> Dict:
        entries = self.entries()
        logger.info(f"Generated matrix with {len(entries)} entries")
        return {"include": entries}


def write_github_output(key: str, value: str, output_file: Optional[Path] = None) -> Path:
    """Append ``key=value`` to the GitHub Actions output file."""
    target = output_file or os.environ.get("GITHUB_OUTPUT")
    if not target:
        raise ReportingError("GITHUB_OUTPUT is not set and no output file was given.")
    path = Path(target)
    try:
        with open(path, "a") as f:
            f.write(f"{key}={value}\n")
    except OSError as e:
        raise ReportingError(f"Error writing to {path}: {e}") from e
    return path


def matrix_json(matrix: Dict) -> str:
    return json.dumps(matrix, separators=(",", ":"))
