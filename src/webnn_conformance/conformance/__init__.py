"""Conformance orchestration and reporting."""

from .orchestrator import ConformanceRunner, classify_case
from .report import CaseResult, FileReport, RunReport, Summary

__all__ = [
    "ConformanceRunner",
    "classify_case",
    "CaseResult",
    "FileReport",
    "RunReport",
    "Summary",
]
