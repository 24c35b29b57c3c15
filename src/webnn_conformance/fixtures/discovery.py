"""Locate WPT WebNN conformance fixture files."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import List, Optional

from ..core.errors import InvalidInvocationError

logger = logging.getLogger(__name__)

FIXTURE_SUFFIX = ".https.any.js"


def conformance_dir(wpt_dir: Path) -> Path:
    return Path(wpt_dir) / "webnn" / "conformance_tests"


def list_conformance_files(wpt_dir: Path) -> List[Path]:
    """All fixture files under the WPT checkout, sorted by name."""
    if not (Path(wpt_dir) / "webnn").exists():
        raise InvalidInvocationError(
            f"WPT not found at {wpt_dir}. Fetch a web-platform-tests checkout first."
        )
    base = conformance_dir(wpt_dir)
    if not base.is_dir():
        return []
    return sorted(p for p in base.iterdir() if p.name.endswith(FIXTURE_SUFFIX))


def filter_files(
    files: List[Path],
    file: Optional[str] = None,
    op: Optional[str] = None,
    limit_files: float = math.inf,
) -> List[Path]:
    """Apply the suffix filter, the operator prefix filter and the file limit."""
    selected = list(files)
    if file:
        selected = [f for f in selected if str(f).endswith(file)]
    if op:
        selected = [
            f for f in selected
            if f.name.startswith(f"{op}.") or f.name.startswith(f"{op}_")
        ]
    if math.isfinite(limit_files):
        selected = selected[: int(limit_files)]
    return selected


def discover_files(
    wpt_dir: Path,
    file: Optional[str] = None,
    op: Optional[str] = None,
    limit_files: float = math.inf,
) -> List[Path]:
    """
    Fixture files selected for a run.

    Raises InvalidInvocationError when the WPT checkout is missing or
    nothing matches the filters.
    """
    selected = filter_files(list_conformance_files(wpt_dir), file=file, op=op, limit_files=limit_files)
    if not selected:
        raise InvalidInvocationError("No matching conformance files.")
    logger.debug("Selected %d fixture files from %s", len(selected), wpt_dir)
    return selected


__all__ = [
    "FIXTURE_SUFFIX",
    "conformance_dir",
    "list_conformance_files",
    "filter_files",
    "discover_files",
]
