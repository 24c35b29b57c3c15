"""
Conformance run orchestration.

Drives fixture files through extraction, then every case through
normalize -> execute -> verify once per variant, and aggregates outcomes
into a RunReport.

Design goals:
- A bad file or a bad case never stops the run (unless stop_on_fail)
- Cases run strictly in order, one in flight at a time
- The backend is acquired once and released on every exit path
- Backend death is fatal: no later case could succeed
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import time
from pathlib import Path
from typing import Any, AsyncContextManager, Callable, Dict, List, Mapping, Optional, Sequence

from ..bridge.client import ExecutionBridge
from ..config import RunOptions, backend_provenance
from ..core.errors import BackendTerminatedError, FatalError, VerificationError
from ..core.tolerance import assert_output_close
from ..core.types import SUPPORTED_DATA_TYPES, CaseStatus, raw_data_types
from ..fixtures.extractor import extract_tests_from_source
from ..graph.ir import build_expected_tensors, normalize_graph
from ..graph.operators import OperatorRegistry, normalize_op_name
from .report import CaseResult, FileReport, RunReport

logger = logging.getLogger(__name__)

BridgeFactory = Callable[[], AsyncContextManager[ExecutionBridge]]
Extractor = Callable[[str, str], List[Any]]

INVALID_CASE_REASON = "invalid extracted test case"


# -------------------------
# Case classification
# -------------------------

def context_options_for_variant(variant: str) -> Dict[str, Any]:
    return {"deviceType": variant}


def is_valid_case(test: Any) -> bool:
    return isinstance(test, Mapping) and bool(test.get("graph"))


def case_name(test: Any, index: int) -> str:
    if isinstance(test, Mapping) and test.get("name"):
        return str(test["name"])
    return f"[unnamed-{index}]"


def classify_case(test: Mapping[str, Any], skip_unimplemented: bool = False) -> Optional[str]:
    """Skip reason for a case, or None when it should run."""
    graph = test.get("graph") or {}
    tensors = list((graph.get("inputs") or {}).values())
    tensors += list((graph.get("expectedOutputs") or {}).values())

    for data_type in raw_data_types(tensors):
        if data_type not in SUPPORTED_DATA_TYPES:
            return f"unsupported dataType: {data_type}"

    if skip_unimplemented:
        operators = graph.get("operators") or []
        missing = OperatorRegistry.unimplemented_in(
            (op or {}).get("name", "") for op in operators
        )
        if missing:
            return f"unimplemented op(s): {', '.join(missing)}"

    return None


# -------------------------
# Runner
# -------------------------

class ConformanceRunner:
    """
    Runs selected fixture files against one backend.

        runner = ConformanceRunner(options, lambda: ExecutionBridge.from_config(cfg))
        report = await runner.run(files)
    """

    def __init__(
        self,
        options: RunOptions,
        bridge_factory: BridgeFactory,
        extractor: Extractor = extract_tests_from_source,
    ):
        self.options = options
        self.bridge_factory = bridge_factory
        self.extractor = extractor

    async def run(self, files: Sequence[Path]) -> RunReport:
        report = RunReport(
            options=self.options.to_dict(),
            cwd=os.getcwd(),
            backend_provenance=backend_provenance(),
        )

        try:
            async with self.bridge_factory() as bridge:
                for file in files:
                    if await self._run_file(bridge, Path(file), report):
                        report.halted = True
                        break
        except Exception as exc:
            logger.error("Fatal error: %s", exc)
            case_counted = isinstance(exc, FatalError) and exc.details.get("case_recorded", False)
            report.record_fatal(str(exc), count_failure=not case_counted)

        return report.finalize()

    # -------------------------
    # Files
    # -------------------------

    def _load_tests(self, path: Path) -> List[Any]:
        source = path.read_text(encoding="utf-8")
        tests = self.extractor(source, path.name)
        if math.isfinite(self.options.limit_tests):
            tests = tests[: int(self.options.limit_tests)]
        return tests

    async def _run_file(self, bridge: ExecutionBridge, path: Path, report: RunReport) -> bool:
        """Run one file; returns True when the run must halt."""
        file_report = report.add_file(path.name)

        try:
            tests = await asyncio.to_thread(self._load_tests, path)
        except Exception as exc:
            report.record_file_error(file_report, str(exc))
            logger.info("[FILE] %s (parse error)", path.name)
            logger.info("  - FAIL file parse: %s", exc)
            return False

        file_report.selected_tests = len(tests)
        logger.info("[FILE] %s (%d tests)", path.name, len(tests))

        for variant in self.options.variants:
            logger.info("[VARIANT] %s", variant)
            for index, test in enumerate(tests):
                if await self._run_case(bridge, file_report, report, test, index, variant):
                    return True

        return False

    # -------------------------
    # Cases
    # -------------------------

    async def _run_case(
        self,
        bridge: ExecutionBridge,
        file_report: FileReport,
        report: RunReport,
        test: Any,
        index: int,
        variant: str,
    ) -> bool:
        name = case_name(test, index)

        if not is_valid_case(test):
            report.record_case(
                file_report,
                CaseResult(name, variant, CaseStatus.SKIP, reason=INVALID_CASE_REASON),
            )
            logger.info("  - SKIP %s: %s", name, INVALID_CASE_REASON)
            return False

        started = time.monotonic()
        try:
            skip_reason = await self.run_single(bridge, test, variant)
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            report.record_case(
                file_report,
                CaseResult(name, variant, CaseStatus.FAIL, error=str(exc), duration_ms=duration_ms),
            )
            logger.info("  - FAIL %s", name)
            logger.debug("    %s", exc)

            if isinstance(exc, BackendTerminatedError):
                raise FatalError(
                    f"backend terminated: {exc}", details={"case_recorded": True}
                ) from exc
            return self.options.stop_on_fail

        duration_ms = int((time.monotonic() - started) * 1000)
        if skip_reason is None:
            report.record_case(
                file_report, CaseResult(name, variant, CaseStatus.PASS, duration_ms=duration_ms)
            )
        else:
            report.record_case(
                file_report,
                CaseResult(name, variant, CaseStatus.SKIP, reason=skip_reason, duration_ms=duration_ms),
            )
            logger.info("  - SKIP %s: %s", name, skip_reason)
        return False

    async def run_single(
        self,
        bridge: ExecutionBridge,
        test: Mapping[str, Any],
        variant: str,
    ) -> Optional[str]:
        """
        Run one valid case on one variant.

        Returns the skip reason, or None when every output verified.
        Raises on any failure.
        """
        skip_reason = classify_case(test, self.options.skip_unimplemented)
        if skip_reason:
            return skip_reason

        graph = test["graph"]
        normalized = normalize_graph(graph)
        outputs = await bridge.execute(normalized, context_options_for_variant(variant))

        operator = normalize_op_name(normalized.document.last_operator or "unknown")
        for output_name, expected in build_expected_tensors(graph).items():
            actual = outputs.get(output_name)
            if actual is None:
                raise VerificationError(f"missing output: {output_name}", output_name=output_name)
            assert_output_close(operator, output_name, expected, actual)

        return None


__all__ = [
    "ConformanceRunner",
    "classify_case",
    "context_options_for_variant",
    "is_valid_case",
    "case_name",
]
