"""
Numeric output verification.

Compares backend outputs against WPT expected values under per-operator
precision budgets.

Design goals:
- Fail fast: length, then shape, then values
- Exact equality for 64-bit integer outputs
- Float acceptance by absolute difference OR ULP distance
- Positional diagnostics in VerificationError.details
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np

from .errors import VerificationError
from .types import DataType, RuntimeTensor


# ---------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------

DEFAULT_ULP_BUDGET = 4
DEFAULT_FLOAT_ABS_TOL = 1e-4

OP_ULP: Dict[str, int] = {
    "add": 1,
    "sub": 1,
    "mul": 1,
    "div": 2,
    "relu": 0,
    "sigmoid": 34,
    "tanh": 16,
    "softmax": 256,
    "matmul": 512,
    "exp": 4,
    "log": 4,
    "sqrt": 2,
    "reduce_sum": 8,
    "reduce_mean": 16,
    "reduce_max": 0,
    "reduce_min": 0,
    "reduce_product": 32,
    "reduce_l1": 8,
    "reduce_l2": 16,
    "reduce_log_sum": 16,
    "reduce_log_sum_exp": 32,
    "reduce_sum_square": 16,
}

OP_ABS_TOL: Dict[str, Dict[str, float]] = {
    "cos": {"float32": 2 ** -10, "float16": 2 ** -7},
    "sin": {"float32": 2 ** -11, "float16": 2 ** -7},
}


@dataclass(frozen=True)
class Tolerance:
    abs_tol: float
    ulp_budget: int


def tolerance_for(operator_name: Optional[str], data_type: DataType) -> Tolerance:
    """Budget applied to one operator's output of the given type."""
    op = operator_name or ""
    ulp_budget = OP_ULP.get(op, DEFAULT_ULP_BUDGET)

    overrides = OP_ABS_TOL.get(op, {})
    if data_type.value in overrides:
        abs_tol = overrides[data_type.value]
    elif data_type.is_floating:
        abs_tol = DEFAULT_FLOAT_ABS_TOL
    else:
        abs_tol = 0.0

    return Tolerance(abs_tol=abs_tol, ulp_budget=ulp_budget)


# ---------------------------------------------------------------------
# ULP distance
# ---------------------------------------------------------------------

def _float32_bits(value: float) -> int:
    with np.errstate(over="ignore"):
        return int(np.array([value], dtype=np.float32).view(np.uint32)[0])


def _ordered(bits: int) -> int:
    # Maps the sign-magnitude pattern onto a monotonic unsigned line.
    if bits & 0x80000000:
        return 0x80000000 - (bits & 0x7FFFFFFF)
    return bits + 0x80000000


def ulp_distance(a: float, b: float) -> float:
    """Distance between two values in float32 units in the last place."""
    if math.isnan(a) and math.isnan(b):
        return 0
    if a == b and math.copysign(1.0, a) == math.copysign(1.0, b):
        return 0
    if not math.isfinite(a) or not math.isfinite(b):
        return 0 if a == b else math.inf
    return abs(_ordered(_float32_bits(a)) - _ordered(_float32_bits(b)))


# ---------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Mismatch:
    index: int
    expected: Any
    actual: Any
    abs_diff: Optional[float] = None
    ulp_distance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "expected": self.expected,
            "actual": self.actual,
            "abs_diff": self.abs_diff,
            "ulp_distance": self.ulp_distance,
        }


def _check_structure(output_name: str, expected: RuntimeTensor, actual: RuntimeTensor) -> None:
    if len(expected.data) != len(actual.data):
        raise VerificationError(
            f"length mismatch for {output_name}: expected {len(expected.data)}, "
            f"got {len(actual.data)}",
            output_name=output_name,
        )

    expected_shape = list(expected.descriptor.shape)
    actual_shape = list(actual.descriptor.shape)
    if expected_shape != actual_shape:
        raise VerificationError(
            f"shape mismatch for {output_name}: expected {expected_shape}, got {actual_shape}",
            output_name=output_name,
        )


def _float_accepted(e: float, a: float, tol: Tolerance) -> Tuple[bool, float, float]:
    if math.isnan(e) and math.isnan(a):
        return True, 0.0, 0
    if not math.isfinite(e) or not math.isfinite(a):
        accepted = e == a
        return accepted, (0.0 if accepted else math.inf), (0 if accepted else math.inf)

    abs_diff = abs(a - e)
    ulp = ulp_distance(a, e)
    return (abs_diff <= tol.abs_tol or ulp <= tol.ulp_budget), abs_diff, ulp


def iter_mismatches(
    operator_name: Optional[str],
    output_name: str,
    expected: RuntimeTensor,
    actual: RuntimeTensor,
) -> Iterator[Mismatch]:
    """
    Yield every element outside tolerance, lazily.

    Length and shape are checked before the first element and raise
    VerificationError directly.
    """
    _check_structure(output_name, expected, actual)

    data_type = expected.descriptor.data_type

    if data_type.is_64bit_integer:
        for index, (e, a) in enumerate(zip(expected.data, actual.data)):
            if int(e) != int(a):
                yield Mismatch(index=index, expected=int(e), actual=int(a))
        return

    tol = tolerance_for(operator_name, data_type)
    for index, (e, a) in enumerate(zip(expected.decoded(), actual.decoded())):
        accepted, abs_diff, ulp = _float_accepted(float(e), float(a), tol)
        if not accepted:
            yield Mismatch(index=index, expected=e, actual=a, abs_diff=abs_diff, ulp_distance=ulp)


def assert_output_close(
    operator_name: Optional[str],
    output_name: str,
    expected: RuntimeTensor,
    actual: RuntimeTensor,
) -> None:
    """Raise VerificationError on the first out-of-tolerance element."""
    mismatch = next(iter_mismatches(operator_name, output_name, expected, actual), None)
    if mismatch is None:
        return

    message = (
        f"value mismatch for {output_name}[{mismatch.index}]: "
        f"expected {mismatch.expected}, got {mismatch.actual}"
    )
    if mismatch.abs_diff is not None:
        tol = tolerance_for(operator_name, expected.descriptor.data_type)
        message += (
            f", absDiff={mismatch.abs_diff}, ulp={mismatch.ulp_distance}, "
            f"ulpTol={tol.ulp_budget}"
        )

    raise VerificationError(message, output_name=output_name, details=mismatch.to_dict())


__all__ = [
    "OP_ULP",
    "OP_ABS_TOL",
    "Tolerance",
    "Mismatch",
    "tolerance_for",
    "ulp_distance",
    "iter_mismatches",
    "assert_output_close",
]
