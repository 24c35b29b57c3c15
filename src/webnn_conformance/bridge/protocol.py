"""
Execution protocol messages.

Newline-delimited JSON over the backend's stdin/stdout:

    -> {"cmd": "execute_graph", "id", "graph", "inputs",
        "expected_outputs", "context_options"}
    <- {"id", "ok": true, "outputs": {name: {"descriptor", "data"}}}
    <- {"id", "ok": false, "error": {"kind", "message"}}

Responses may arrive in any order; ``id`` is the only correlation key.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from ..core.errors import ConformanceError, ProtocolError
from ..core.types import RuntimeTensor

logger = logging.getLogger(__name__)

EXECUTE_GRAPH = "execute_graph"
DEFAULT_FAILURE_KIND = "RuntimeExecutionError"


# ---------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------

@dataclass
class ExecuteGraphRequest:
    id: str
    graph: Dict[str, Any]
    inputs: Dict[str, Any]
    expected_outputs: Dict[str, Any]
    context_options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cmd": EXECUTE_GRAPH,
            "id": self.id,
            "graph": self.graph,
            "inputs": self.inputs,
            "expected_outputs": self.expected_outputs,
            "context_options": self.context_options,
        }


@dataclass
class SuccessResponse:
    id: str
    outputs: Dict[str, RuntimeTensor]


@dataclass
class FailureResponse:
    id: str
    kind: str
    message: str


Response = Union[SuccessResponse, FailureResponse]


def encode_request(request: ExecuteGraphRequest) -> bytes:
    """One request as a single UTF-8 line, newline included."""
    try:
        line = json.dumps(request.to_dict(), allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"request {request.id} is not JSON-serializable: {exc}") from exc
    return (line + "\n").encode("utf-8")


def decode_response(line: Union[str, bytes]) -> Response:
    """Parse one response line; raises ProtocolError when malformed."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")

    try:
        msg = json.loads(line)
    except ValueError as exc:
        raise ProtocolError(f"undecodable response line: {exc}") from exc

    if not isinstance(msg, dict) or not isinstance(msg.get("id"), str):
        raise ProtocolError("response is not an object with a string id")

    if msg.get("ok"):
        outputs = msg.get("outputs") or {}
        if not isinstance(outputs, dict):
            raise ProtocolError(f"response {msg['id']}: outputs is not an object")
        try:
            decoded = {name: RuntimeTensor.from_wire(raw) for name, raw in outputs.items()}
        except (ConformanceError, AttributeError, TypeError, ValueError) as exc:
            raise ProtocolError(f"response {msg['id']}: invalid output tensor: {exc}") from exc
        return SuccessResponse(id=msg["id"], outputs=decoded)

    error = msg.get("error") or {}
    if not isinstance(error, dict):
        raise ProtocolError(f"response {msg['id']}: error is not an object")
    return FailureResponse(
        id=msg["id"],
        kind=str(error.get("kind") or DEFAULT_FAILURE_KIND),
        message=str(error.get("message") or "runner error"),
    )


# ---------------------------------------------------------------------
# Correlation table
# ---------------------------------------------------------------------

class PendingTable:
    """
    In-flight requests keyed by correlation id.

    Each entry is settled exactly once and then removed.
    """

    def __init__(self):
        self._futures: Dict[str, asyncio.Future] = {}

    def register(self, request_id: str) -> asyncio.Future:
        if request_id in self._futures:
            raise ProtocolError(f"duplicate request id: {request_id}")
        future = asyncio.get_running_loop().create_future()
        self._futures[request_id] = future
        return future

    def resolve(self, request_id: str, value: Any) -> bool:
        future = self._futures.pop(request_id, None)
        if future is None:
            return False
        if not future.done():
            future.set_result(value)
        return True

    def reject(self, request_id: str, error: BaseException) -> bool:
        future = self._futures.pop(request_id, None)
        if future is None:
            return False
        if not future.done():
            future.set_exception(error)
        return True

    def discard(self, request_id: str) -> None:
        self._futures.pop(request_id, None)

    def reject_all(self, error: BaseException) -> int:
        """Reject every pending entry; returns how many were rejected."""
        futures = list(self._futures.values())
        self._futures.clear()
        for future in futures:
            if not future.done():
                future.set_exception(error)
        return len(futures)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._futures

    def __len__(self) -> int:
        return len(self._futures)


__all__ = [
    "EXECUTE_GRAPH",
    "ExecuteGraphRequest",
    "SuccessResponse",
    "FailureResponse",
    "Response",
    "encode_request",
    "decode_response",
    "PendingTable",
]
