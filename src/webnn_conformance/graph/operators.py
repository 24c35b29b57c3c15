"""
Operator discovery and registration.

The builder validates every invocation against this registry, so adding a
new operator is a registration, not a change to the builder surface.
"""

import re
from typing import FrozenSet, Iterable, List, Set

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def normalize_op_name(op_name: str) -> str:
    """``reduceSum`` -> ``reduce_sum``; snake_case names pass through."""
    return _CAMEL_BOUNDARY.sub(r"\1_\2", op_name).lower()


# WebNN operator set, snake_case.
_WEBNN_OPERATORS = (
    "abs", "add", "argmax", "argmin", "average_pool2d", "batch_normalization",
    "cast", "ceil", "clamp", "concat", "conv2d", "conv_transpose2d", "cos",
    "cumulative_sum", "dequantize_linear", "div", "elu", "equal", "erf", "exp",
    "expand", "floor", "gather", "gather_elements", "gather_nd", "gelu", "gemm",
    "greater", "greater_or_equal", "gru", "gru_cell", "hard_sigmoid",
    "hard_swish", "identity", "instance_normalization", "is_infinite",
    "is_nan", "l2_pool2d", "layer_normalization", "leaky_relu", "lesser",
    "lesser_or_equal", "linear", "log", "logical_and", "logical_not",
    "logical_or", "logical_xor", "lstm", "lstm_cell", "matmul", "max",
    "max_pool2d", "min", "mul", "neg", "not_equal", "pad", "pow", "prelu",
    "quantize_linear", "reciprocal", "reduce_l1", "reduce_l2",
    "reduce_log_sum", "reduce_log_sum_exp", "reduce_max", "reduce_mean",
    "reduce_min", "reduce_product", "reduce_sum", "reduce_sum_square", "relu",
    "resample2d", "reshape", "reverse", "round_even", "scatter_elements",
    "scatter_nd", "sigmoid", "sign", "sin", "slice", "softmax", "softplus",
    "softsign", "split", "sqrt", "sub", "tanh", "tile", "transpose", "triangular",
    "where",
)

# Keep aligned with the backend's implementation-status docs.
_UNIMPLEMENTED_OPERATORS = (
    "cumulative_sum",
    "is_nan",
    "l2_pool2d",
    "reverse",
    "round_even",
    # Deferred in the backend.
    "gru",
    "gru_cell",
    "lstm",
    "lstm_cell",
)


class OperatorRegistry:
    """
    Central registry of known operators.
    Tracks which of them the backend is known not to implement.
    """

    _operators: Set[str] = set(_WEBNN_OPERATORS)
    _unimplemented: Set[str] = set(_UNIMPLEMENTED_OPERATORS)

    @classmethod
    def register(cls, name: str, implemented: bool = True) -> str:
        """Register an operator; returns its normalized name."""
        normalized = normalize_op_name(name)
        cls._operators.add(normalized)
        if implemented:
            cls._unimplemented.discard(normalized)
        else:
            cls._unimplemented.add(normalized)
        return normalized

    @classmethod
    def is_known(cls, name: str) -> bool:
        return normalize_op_name(name) in cls._operators

    @classmethod
    def is_unimplemented(cls, name: str) -> bool:
        return normalize_op_name(name) in cls._unimplemented

    @classmethod
    def known_operators(cls) -> FrozenSet[str]:
        return frozenset(cls._operators)

    @classmethod
    def unimplemented_in(cls, op_names: Iterable[str]) -> List[str]:
        """Unimplemented operators among ``op_names``, deduplicated, in order."""
        missing: List[str] = []
        for name in op_names:
            normalized = normalize_op_name(name or "")
            if normalized in cls._unimplemented and normalized not in missing:
                missing.append(normalized)
        return missing
