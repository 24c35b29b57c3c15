"""
WPT fixture extraction.

WPT conformance files are scripts: a top-level array of test definitions
followed by a harness call. The array is recovered by evaluating the script
in a fresh V8 isolate with a pruned global object and a time budget.

Design goals:
- Only numeric and array primitives reachable from fixture code
- Hard wall-clock budget per file
- BigInt and non-finite values survive the trip into Python
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

from py_mini_racer import JSTimeoutException, MiniRacer

from ..core.errors import ExtractionError

logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT_S = 5.0

_ARRAY_DECLARATION = re.compile(r"^(?:const|let|var)\s+(\w+)\s*=\s*\[", re.MULTILINE)
_HARNESS_CALL = re.compile(r"\nwebnn_conformance_test\([\s\S]*?\);\s*$", re.MULTILINE)
# Current WPT files dispatch through `if (navigator.ml) { ... } else { ... }`.
_HARNESS_BLOCK = re.compile(r"^if\s*\(\s*navigator\.ml\s*\)\s*\{[\s\S]*\Z", re.MULTILINE)

ALLOWED_GLOBALS = (
    "Object", "Array", "Number", "Math", "BigInt", "JSON", "String", "Boolean",
    "Symbol", "Error", "TypeError", "RangeError", "SyntaxError", "ReferenceError",
    "Infinity", "NaN", "undefined", "globalThis",
    "ArrayBuffer", "DataView", "Float16Array", "Float32Array", "Float64Array",
    "Int8Array", "Uint8Array", "Uint8ClampedArray", "Int16Array", "Uint16Array",
    "Int32Array", "Uint32Array", "BigInt64Array", "BigUint64Array",
)

_PRELUDE = """
(function () {
  const keep = new Set(%s);
  for (const name of Object.getOwnPropertyNames(globalThis)) {
    if (keep.has(name)) continue;
    let removed = false;
    try { removed = delete globalThis[name]; } catch (e) {}
    if (!removed) {
      // Non-configurable host bindings (e.g. setTimeout) cannot be deleted.
      try { globalThis[name] = undefined; } catch (e) {}
    }
  }
})();
""" % json.dumps(list(ALLOWED_GLOBALS))

_CAPTURE = """
;(function () {
  const replacer = function (key, value) {
    if (typeof value === 'bigint') return value.toString();
    if (typeof value === 'number' && !Number.isFinite(value)) return String(value);
    if (ArrayBuffer.isView(value)) return Array.from(value);
    return value;
  };
  const captured = %s;
  const ok = Array.isArray(captured);
  return JSON.stringify({ ok: ok, tests: ok ? captured : null }, replacer);
})()
"""


def find_test_array_name(source: str) -> str:
    """Name of the top-level test array; ``*Tests`` wins over other arrays."""
    names = _ARRAY_DECLARATION.findall(source)
    if not names:
        raise LookupError("no top-level array declaration")
    for name in names:
        if name.endswith("Tests"):
            return name
    return names[0]


def strip_harness_call(source: str) -> str:
    """Remove the trailing harness dispatch so only data definitions run."""
    source = _HARNESS_BLOCK.sub("", source, count=1)
    return _HARNESS_CALL.sub("\n", source, count=1)


def extract_tests_from_source(
    source: str,
    source_name: str = "wpt-test.js",
    time_limit_s: float = DEFAULT_TIME_LIMIT_S,
) -> List[Dict[str, Any]]:
    """
    Evaluate a WPT fixture and return its raw test-case list.

    Raises:
        ExtractionError: no array declaration, evaluation failure, time
            budget exceeded, or a captured value that is not an array.
    """
    try:
        array_name = find_test_array_name(source)
    except LookupError as exc:
        raise ExtractionError(
            f"No <name>Tests array found in {source_name}", source_name=source_name
        ) from exc

    code = _PRELUDE + strip_harness_call(source) + _CAPTURE % array_name

    try:
        with MiniRacer() as ctx:
            payload = ctx.eval(code, timeout_sec=time_limit_s)
    except JSTimeoutException as exc:
        raise ExtractionError(
            f"Failed to evaluate {source_name}: timed out after {time_limit_s}s",
            source_name=source_name,
        ) from exc
    except Exception as exc:
        raise ExtractionError(
            f"Failed to evaluate {source_name}: {exc}", source_name=source_name
        ) from exc

    try:
        captured = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise ExtractionError(
            f"Failed to decode captured tests from {source_name}: {exc}",
            source_name=source_name,
        ) from exc

    if not captured.get("ok"):
        raise ExtractionError(
            f"Extracted test payload is not an array in {source_name}",
            source_name=source_name,
        )

    tests = captured["tests"]
    logger.debug("Extracted %d tests from %s (%s)", len(tests), source_name, array_name)
    return tests


__all__ = [
    "DEFAULT_TIME_LIMIT_S",
    "ALLOWED_GLOBALS",
    "find_test_array_name",
    "strip_harness_call",
    "extract_tests_from_source",
]
