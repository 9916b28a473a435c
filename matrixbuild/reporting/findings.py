from __future__ import annotations

import json
import posixpath
import logging
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

from matrixbuild.errors import ReportingError

logger = logging.getLogger(__name__)

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_VERSION = "2.1.0"

# rustc/clippy diagnostic level -> SARIF result level
_SARIF_LEVELS = {
    "error": "error",
    "error: internal compiler error": "error",
    "warning": "warning",
    "note": "note",
    "help": "note",
}


@dataclass(frozen=True)
class LintFinding:
    severity: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
            "rule_id": self.rule_id,
            "message": self.message,
        }


def parse_clippy_messages(lines: Iterable[str]) -> List[LintFinding]:
    """Extract findings from cargo's ``--message-format=json`` stream.

    Non-JSON lines and non-diagnostic records are skipped. Diagnostics
    without a source span carry no file reference and are dropped.
    """
    findings: List[LintFinding] = []
    for raw in lines:
        raw = raw.strip()
        if not raw.startswith("{"):
            continue
        try:
            record = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparseable cargo output line: {raw[:80]}")
            continue
        if record.get("reason") != "compiler-message":
            continue
        message = record.get("message") or {}
        spans = message.get("spans") or []
        if not spans:
            continue
        primary = next((s for s in spans if s.get("is_primary")), spans[0])
        code = message.get("code") or {}
        findings.append(
            LintFinding(
                severity=str(message.get("level", "warning")),
                message=str(message.get("message", "")),
                file=primary.get("file_name"),
                line=primary.get("line_start"),
                column=primary.get("column_start"),
                rule_id=code.get("code"),
            )
        )
    return findings


def rewrite_path(file: Optional[str], prefix: str, working_dir: Optional[Path] = None) -> Optional[str]:
    """Turn a tool-relative path into a repository-relative one by prepending ``prefix``.

    Absolute paths inside ``working_dir`` are made relative first; absolute
    paths elsewhere (registry sources, toolchain sysroot) are left untouched.
    """
    if file is None:
        return None
    path = PurePosixPath(file.replace("\\", "/"))
    if path.is_absolute():
        if working_dir is None:
            return str(path)
        try:
            path = path.relative_to(PurePosixPath(Path(working_dir).resolve().as_posix()))
        except ValueError:
            return str(path)
    relative = str(path)
    if relative.startswith("./"):
        relative = relative[2:]
    return posixpath.normpath(f"{prefix}{relative}")


def rewrite_findings(
    findings: Iterable[LintFinding], prefix: str, working_dir: Optional[Path] = None
) -> List[LintFinding]:
    rewritten = []
    for finding in findings:
        try:
            rewritten.append(replace(finding, file=rewrite_path(finding.file, prefix, working_dir)))
        except (TypeError, ValueError) as e:
            raise ReportingError(f"Could not rewrite path of finding {finding}: {e}") from e
    return rewritten


def to_sarif(findings: Iterable[LintFinding], category: str, tool_name: str = "clippy") -> Dict[str, Any]:
    results = []
    rules: Dict[str, Dict[str, Any]] = {}
    for finding in findings:
        result: Dict[str, Any] = {
            "level": _SARIF_LEVELS.get(finding.severity, "warning"),
            "message": {"text": finding.message},
        }
        if finding.rule_id:
            result["ruleId"] = finding.rule_id
            rules.setdefault(finding.rule_id, {"id": finding.rule_id})
        if finding.file:
            region: Dict[str, Any] = {}
            if finding.line is not None:
                region["startLine"] = finding.line
            if finding.column is not None:
                region["startColumn"] = finding.column
            location: Dict[str, Any] = {"artifactLocation": {"uri": finding.file}}
            if region:
                location["region"] = region
            result["locations"] = [{"physicalLocation": location}]
        results.append(result)

    return {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [
            {
                "tool": {"driver": {"name": tool_name, "rules": list(rules.values())}},
                "automationDetails": {"id": category},
                "results": results,
            }
        ],
    }
