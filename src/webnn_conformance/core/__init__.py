"""Core primitives: tensor types, wire codecs, errors and tolerance checks."""

from .errors import (
    BackendTerminatedError,
    ConformanceError,
    ExecutionError,
    ExitCode,
    ExtractionError,
    FatalError,
    GraphError,
    InvalidInvocationError,
    ProtocolError,
    VerificationError,
)
from .tolerance import assert_output_close, iter_mismatches, tolerance_for, ulp_distance
from .types import CaseStatus, DataType, RuntimeTensor, TensorDescriptor

__all__ = [
    "DataType",
    "CaseStatus",
    "TensorDescriptor",
    "RuntimeTensor",
    "assert_output_close",
    "iter_mismatches",
    "tolerance_for",
    "ulp_distance",
    "ExitCode",
    "ConformanceError",
    "InvalidInvocationError",
    "ExtractionError",
    "GraphError",
    "ExecutionError",
    "BackendTerminatedError",
    "ProtocolError",
    "VerificationError",
    "FatalError",
]
