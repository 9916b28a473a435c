import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, TYPE_CHECKING

from matrixbuild.errors import ReportingError
from matrixbuild.reporting.findings import to_sarif

if TYPE_CHECKING:
    from matrixbuild.reporting.reporter import BuildOutcome, RunReport

logger = logging.getLogger(__name__)


def write_json(file_path: Path, data: Dict[str, Any]) -> None:
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w") as f:
            json.dump(data, f, indent=2)
    except (OSError, TypeError, ValueError) as e:
        raise ReportingError(f"Error writing to {file_path}: {e}") from e
    logger.debug(f"✅ Successfully wrote to {file_path}")


def category_dirname(category: str) -> str:
    """Filesystem-safe, collision-free directory name for a feature-set key."""
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", category.lower()).strip("_")
    digest = hashlib.sha1(category.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}"


class ReportPublisher:
    """Writes per-configuration reports keyed by feature-set string."""

    def __init__(self, output_dir: Path, tool_name: str = "clippy"):
        self.output_dir = Path(output_dir)
        self.tool_name = tool_name

    def category_dir(self, category: str) -> Path:
        return self.output_dir / category_dirname(category)

    def publish_findings(self, outcome: "BuildOutcome") -> Path:
        path = self.category_dir(outcome.category) / "results.sarif"
        write_json(path, to_sarif(outcome.findings, outcome.category, self.tool_name))
        return path

    def publish_report(self, outcome: "BuildOutcome") -> Path:
        path = self.category_dir(outcome.category) / "report.json"
        write_json(path, outcome.to_dict())
        return path

    def publish_index(self, report: "RunReport") -> Path:
        path = self.output_dir / "index.json"
        write_json(path, report.to_dict())
        logger.info(f"Published run index to {path}")
        return path
