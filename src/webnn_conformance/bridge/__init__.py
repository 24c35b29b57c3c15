"""Subprocess execution bridge to the graph backend."""

from .client import ExecutionBridge
from .protocol import (
    ExecuteGraphRequest,
    FailureResponse,
    PendingTable,
    SuccessResponse,
    decode_response,
    encode_request,
)
from .transport import SubprocessTransport, Transport

__all__ = [
    "ExecutionBridge",
    "ExecuteGraphRequest",
    "SuccessResponse",
    "FailureResponse",
    "PendingTable",
    "encode_request",
    "decode_response",
    "Transport",
    "SubprocessTransport",
]
