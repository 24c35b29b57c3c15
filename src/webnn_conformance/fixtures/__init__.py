"""WPT fixture discovery and extraction."""

from .discovery import discover_files, filter_files, list_conformance_files
from .extractor import extract_tests_from_source

__all__ = [
    "discover_files",
    "filter_files",
    "list_conformance_files",
    "extract_tests_from_source",
]
