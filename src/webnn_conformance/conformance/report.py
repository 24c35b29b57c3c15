"""
Run report: aggregation records and their artifacts.

The JSON artifact layout is a public contract consumed by dashboards:

    {meta, summary, files: [{fileName, selectedTests, summary, fileError,
    cases: [{testName, variant, status, reason|error, durationMs}]}],
    failures, fatalError}
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from ..core.types import CaseStatus

logger = logging.getLogger(__name__)

MAX_LISTED_FAILURES = 20


def format_iso8601(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> str:
    return format_iso8601(datetime.now(timezone.utc))


def _pct(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 1)


# -------------------------
# Records
# -------------------------

@dataclass
class CaseResult:
    test_name: str
    variant: str
    status: CaseStatus
    reason: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "testName": self.test_name,
            "variant": self.variant,
            "status": self.status.value,
        }
        if self.status is CaseStatus.SKIP:
            data["reason"] = self.reason
        elif self.status is CaseStatus.FAIL:
            data["error"] = self.error
        data["durationMs"] = self.duration_ms
        return data


@dataclass
class Summary:
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def pass_rate_pct(self) -> float:
        return _pct(self.passed, self.total)

    @property
    def pass_rate_excluding_skips_pct(self) -> float:
        return _pct(self.passed, self.passed + self.failed)

    def count(self, status: CaseStatus) -> None:
        if status is CaseStatus.PASS:
            self.passed += 1
        elif status is CaseStatus.FAIL:
            self.failed += 1
        else:
            self.skipped += 1

    def to_dict(self, with_rates: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
        }
        if with_rates:
            data["total"] = self.total
            data["passRatePct"] = self.pass_rate_pct
            data["passRateExcludingSkipsPct"] = self.pass_rate_excluding_skips_pct
        return data


@dataclass
class FileReport:
    file_name: str
    selected_tests: int = 0
    summary: Summary = field(default_factory=Summary)
    cases: List[CaseResult] = field(default_factory=list)
    file_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "selectedTests": self.selected_tests,
            "summary": self.summary.to_dict(),
            "cases": [case.to_dict() for case in self.cases],
            "fileError": self.file_error,
        }


@dataclass
class RunReport:
    """Built incrementally by the orchestrator, finalized once at run end."""

    options: Dict[str, Any] = field(default_factory=dict)
    cwd: str = ""
    backend_provenance: Dict[str, Optional[str]] = field(default_factory=dict)
    started_at: str = field(default_factory=utc_now)
    ended_at: Optional[str] = None
    summary: Summary = field(default_factory=Summary)
    files: List[FileReport] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    fatal_error: Optional[str] = None
    halted: bool = False

    # -------------------------
    # Recording
    # -------------------------

    def add_file(self, file_name: str) -> FileReport:
        file_report = FileReport(file_name=file_name)
        self.files.append(file_report)
        return file_report

    def record_case(self, file_report: FileReport, case: CaseResult) -> None:
        file_report.cases.append(case)
        file_report.summary.count(case.status)
        self.summary.count(case.status)
        if case.status is CaseStatus.FAIL:
            self.failures.append(
                f"{file_report.file_name} :: {case.variant} :: {case.test_name} :: {case.error}"
            )

    def record_file_error(self, file_report: FileReport, message: str) -> None:
        file_report.file_error = message
        file_report.summary.failed += 1
        self.summary.failed += 1
        self.failures.append(f"{file_report.file_name} :: FILE_PARSE :: {message}")

    def record_fatal(self, message: str, count_failure: bool = True) -> None:
        """
        Record the run-level error. It counts as one failure unless the
        case that triggered it was already counted.
        """
        self.fatal_error = message
        if count_failure:
            self.summary.failed += 1
        self.failures.append(f"FATAL :: {message}")

    def finalize(self) -> "RunReport":
        self.ended_at = utc_now()
        return self

    @property
    def succeeded(self) -> bool:
        return self.summary.failed == 0 and self.fatal_error is None

    # -------------------------
    # Serialization
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": {
                "startedAt": self.started_at,
                "endedAt": self.ended_at,
                "options": self.options,
                "cwd": self.cwd,
                "backendProvenance": self.backend_provenance,
            },
            "summary": self.summary.to_dict(with_rates=True),
            "files": [f.to_dict() for f in self.files],
            "failures": list(self.failures),
            "fatalError": self.fatal_error,
        }


# -------------------------
# Artifacts
# -------------------------

def write_json_report(report: RunReport, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
        f.write("\n")
    logger.info("JSON report written: %s", path)
    return path


def _summary_table(report: RunReport) -> Table:
    summary = report.summary
    table = Table(title="Conformance Summary")
    table.add_column("Passed", style="green", justify="right")
    table.add_column("Failed", style="red", justify="right")
    table.add_column("Skipped", style="yellow", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Pass Rate", justify="right")
    table.add_column("Excl. Skips", justify="right")
    table.add_row(
        str(summary.passed),
        str(summary.failed),
        str(summary.skipped),
        str(summary.total),
        f"{summary.pass_rate_pct}%",
        f"{summary.pass_rate_excluding_skips_pct}%",
    )
    return table


def _files_table(report: RunReport) -> Table:
    table = Table(title="Files")
    table.add_column("File", style="cyan")
    table.add_column("Tests", justify="right")
    table.add_column("Passed", style="green", justify="right")
    table.add_column("Failed", style="red", justify="right")
    table.add_column("Skipped", style="yellow", justify="right")
    table.add_column("Error", style="dim")
    for f in report.files:
        table.add_row(
            f.file_name,
            str(f.selected_tests),
            str(f.summary.passed),
            str(f.summary.failed),
            str(f.summary.skipped),
            f.file_error or "",
        )
    return table


def render_summary(report: RunReport, console: Console, show_files: bool = False) -> None:
    """Print the end-of-run summary."""
    console.print()
    console.print(_summary_table(report))

    if show_files and report.files:
        console.print(_files_table(report))

    if report.failures:
        console.print("\n[bold]First failures:[/bold]")
        for line in report.failures[:MAX_LISTED_FAILURES]:
            console.print(f"  - {line}", markup=False)

    if report.halted:
        console.print("\n[yellow]Run halted early due to --stop-on-fail.[/yellow]")
    if report.fatal_error:
        console.print(f"\n[red]Fatal error:[/red] {report.fatal_error}")


def write_html_report(report: RunReport, path: Path) -> Path:
    """Render the summary and per-file tables to a standalone HTML page."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    console = Console(record=True, file=io.StringIO(), width=140)
    meta = report.to_dict()["meta"]
    console.print("[bold]WebNN WPT Conformance[/bold]")
    console.print(f"Started: {meta['startedAt']}  Ended: {meta['endedAt']}")
    provenance = report.backend_provenance or {}
    if provenance.get("commit"):
        console.print(f"Backend commit: {provenance['commit']} {provenance.get('commitUrl') or ''}")
    render_summary(report, console, show_files=True)

    console.save_html(str(path))
    logger.info("HTML report written: %s", path)
    return path


__all__ = [
    "CaseResult",
    "Summary",
    "FileReport",
    "RunReport",
    "utc_now",
    "write_json_report",
    "render_summary",
    "write_html_report",
]
