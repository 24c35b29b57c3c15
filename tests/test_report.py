"""
Tests for run report aggregation and artifacts.
"""

import json
from pathlib import Path

from rich.console import Console

from webnn_conformance.conformance.report import (
    CaseResult,
    RunReport,
    render_summary,
    write_html_report,
    write_json_report,
)
from webnn_conformance.core.types import CaseStatus


def _report() -> RunReport:
    report = RunReport(
        options={"variants": ["cpu"]},
        cwd="/work",
        backend_provenance={"commit": "abc123", "commitUrl": None},
    )
    add = report.add_file("add.https.any.js")
    add.selected_tests = 3
    report.record_case(add, CaseResult("a", "cpu", CaseStatus.PASS, duration_ms=4))
    report.record_case(add, CaseResult("b", "cpu", CaseStatus.FAIL, error="value mismatch", duration_ms=2))
    report.record_case(add, CaseResult("c", "cpu", CaseStatus.SKIP, reason="unsupported dataType: bfloat16"))
    bad = report.add_file("bad.https.any.js")
    report.record_file_error(bad, "No <name>Tests array found in bad.https.any.js")
    return report.finalize()


class TestAggregation:
    def test_summary_counts_and_rates(self) -> None:
        summary = _report().to_dict()["summary"]
        assert summary == {
            "passed": 1,
            "failed": 2,
            "skipped": 1,
            "total": 4,
            "passRatePct": 25.0,
            "passRateExcludingSkipsPct": 33.3,
        }

    def test_empty_run_rates_are_zero(self) -> None:
        summary = RunReport().finalize().to_dict()["summary"]
        assert summary["total"] == 0
        assert summary["passRatePct"] == 0.0
        assert summary["passRateExcludingSkipsPct"] == 0.0

    def test_case_records_carry_reason_or_error(self) -> None:
        cases = _report().to_dict()["files"][0]["cases"]
        assert "reason" not in cases[0] and "error" not in cases[0]
        assert cases[1]["error"] == "value mismatch"
        assert cases[2]["reason"] == "unsupported dataType: bfloat16"

    def test_file_error_counted(self) -> None:
        data = _report().to_dict()
        assert data["files"][1]["fileError"].startswith("No <name>Tests array")
        assert data["files"][1]["summary"] == {"passed": 0, "failed": 1, "skipped": 0}
        assert data["failures"] == [
            "add.https.any.js :: cpu :: b :: value mismatch",
            "bad.https.any.js :: FILE_PARSE :: No <name>Tests array found in bad.https.any.js",
        ]

    def test_fatal_counts_once(self) -> None:
        report = RunReport()
        report.record_fatal("runner exited (code=1)")
        data = report.finalize().to_dict()
        assert data["fatalError"] == "runner exited (code=1)"
        assert data["summary"]["failed"] == 1
        assert data["failures"] == ["FATAL :: runner exited (code=1)"]
        assert not report.succeeded

    def test_fatal_after_counted_case_not_double_counted(self) -> None:
        report = RunReport()
        add = report.add_file("add.https.any.js")
        report.record_case(add, CaseResult("a", "cpu", CaseStatus.FAIL, error="runner exited (code=1)"))
        report.record_fatal("backend terminated: runner exited (code=1)", count_failure=False)
        data = report.finalize().to_dict()
        assert data["summary"]["failed"] == 1
        assert data["failures"][-1] == "FATAL :: backend terminated: runner exited (code=1)"
        assert not report.succeeded

    def test_meta(self) -> None:
        meta = _report().to_dict()["meta"]
        assert meta["startedAt"].endswith("Z")
        assert meta["endedAt"] is not None
        assert meta["backendProvenance"] == {"commit": "abc123", "commitUrl": None}
        assert meta["cwd"] == "/work"


class TestArtifacts:
    def test_json_report(self, tmp_path: Path) -> None:
        path = write_json_report(_report(), tmp_path / "out" / "report.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["summary"]["total"] == 4
        assert set(data) == {"meta", "summary", "files", "failures", "fatalError"}

    def test_html_report(self, tmp_path: Path) -> None:
        path = write_html_report(_report(), tmp_path / "report.html")
        html = path.read_text(encoding="utf-8")
        assert "<html" in html.lower()
        assert "add.https.any.js" in html
        assert "abc123" in html

    def test_render_summary(self) -> None:
        console = Console(record=True, width=200)
        render_summary(_report(), console)
        text = console.export_text()
        assert "Conformance Summary" in text
        assert "add.https.any.js :: cpu :: b :: value mismatch" in text
