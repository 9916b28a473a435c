import json

import pytest

from matrixbuild.reporting.findings import (
    LintFinding,
    parse_clippy_messages,
    rewrite_findings,
    rewrite_path,
    to_sarif,
)


def _compiler_message(level, message, file_name=None, line=1, code=None):
    spans = []
    if file_name:
        spans.append({"file_name": file_name, "line_start": line, "column_start": 5, "is_primary": True})
    return json.dumps({
        "reason": "compiler-message",
        "package_id": "firmware 0.1.0",
        "message": {
            "level": level,
            "message": message,
            "code": {"code": code, "explanation": None} if code else None,
            "spans": spans,
        },
    })


def test_parse_clippy_stream():
    lines = [
        json.dumps({"reason": "compiler-artifact", "package_id": "dep 1.0"}),
        _compiler_message("warning", "unused variable: `x`", "src/main.rs", 12, "unused_variables"),
        "   Compiling firmware v0.1.0",
        _compiler_message("error", "needless borrow", "src/imu/mod.rs", 40, "clippy::needless_borrow"),
        _compiler_message("error", "aborting due to previous error"),
        json.dumps({"reason": "build-finished", "success": False}),
        "{not json",
    ]
    findings = parse_clippy_messages(lines)
    assert findings == [
        LintFinding(severity="warning", message="unused variable: `x`", file="src/main.rs",
                    line=12, column=5, rule_id="unused_variables"),
        LintFinding(severity="error", message="needless borrow", file="src/imu/mod.rs",
                    line=40, column=5, rule_id="clippy::needless_borrow"),
    ]


@pytest.mark.parametrize("raw,expected", [
    ("src/main.rs", "firmware/src/main.rs"),
    ("./src/main.rs", "firmware/src/main.rs"),
    ("src\\net\\wifi.rs", "firmware/src/net/wifi.rs"),
    ("../networking/firmware_protocol/src/lib.rs", "networking/firmware_protocol/src/lib.rs"),
    ("src/net/../main.rs", "firmware/src/main.rs"),
    (None, None),
])
def test_rewrite_relative_paths(raw, expected):
    assert rewrite_path(raw, "firmware/") == expected


def test_rewrite_absolute_paths(tmp_path):
    inside = str(tmp_path.resolve() / "src" / "main.rs")
    outside = "/home/runner/.cargo/registry/src/embassy/lib.rs"
    assert rewrite_path(inside, "firmware/", tmp_path) == "firmware/src/main.rs"
    assert rewrite_path(outside, "firmware/", tmp_path) == outside


def test_every_severity_is_rewritten():
    findings = [
        LintFinding(severity=level, message="m", file="src/lib.rs", line=1)
        for level in ("error", "warning", "note", "help")
    ]
    rewritten = rewrite_findings(findings, "firmware/")
    assert [f.file for f in rewritten] == ["firmware/src/lib.rs"] * 4
    # Originals are untouched.
    assert findings[0].file == "src/lib.rs"


def test_sarif_document_is_keyed_by_category():
    findings = [
        LintFinding(severity="warning", message="m1", file="firmware/src/a.rs", line=3, column=1,
                    rule_id="clippy::pedantic"),
        LintFinding(severity="help", message="m2", file="firmware/src/b.rs"),
    ]
    doc = to_sarif(findings, "mcu-esp32c3,net-wifi,log-rtt,imu-stubbed,fusion-stubbed")
    run = doc["runs"][0]
    assert doc["version"] == "2.1.0"
    assert run["automationDetails"]["id"] == "mcu-esp32c3,net-wifi,log-rtt,imu-stubbed,fusion-stubbed"
    assert run["tool"]["driver"]["rules"] == [{"id": "clippy::pedantic"}]
    first, second = run["results"]
    assert first["level"] == "warning"
    assert first["locations"][0]["physicalLocation"] == {
        "artifactLocation": {"uri": "firmware/src/a.rs"},
        "region": {"startLine": 3, "startColumn": 1},
    }
    assert second["level"] == "note"
    assert "ruleId" not in second
