"""
Execution bridge: request/response client over a line transport.

One bridge owns one backend for the whole run.

    async with ExecutionBridge(SubprocessTransport(cmd)) as bridge:
        outputs = await bridge.execute(normalized, {"deviceType": "cpu"})

Invariants:
- every pending request is settled exactly once
- once the backend exits, all pending and later requests fail with
  BackendTerminatedError; there is no restart
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from ..core.errors import BackendTerminatedError, ExecutionError, ProtocolError
from ..core.types import RuntimeTensor
from ..graph.ir import NormalizedGraph
from .protocol import (
    ExecuteGraphRequest,
    FailureResponse,
    PendingTable,
    SuccessResponse,
    decode_response,
    encode_request,
)
from .transport import SubprocessTransport, Transport

logger = logging.getLogger(__name__)

_READER_SHUTDOWN_TIMEOUT_S = 5.0


class ExecutionBridge:
    """Correlates execute_graph requests with backend responses."""

    def __init__(self, transport: Transport):
        self._transport = transport
        self._pending = PendingTable()
        self._reader: Optional[asyncio.Task] = None
        self._returncode: Optional[int] = None
        self._exited = False
        self._closed = False

    @classmethod
    def from_config(cls, runner_config) -> "ExecutionBridge":
        """Bridge over a subprocess described by a RunnerConfig."""
        return cls(
            SubprocessTransport(
                runner_config.command,
                cwd=runner_config.cwd,
                env=runner_config.build_env(),
            )
        )

    # -------------------------
    # Lifecycle
    # -------------------------

    async def start(self) -> None:
        if self._reader is not None:
            return
        await self._transport.start()
        self._reader = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        await self._transport.close()

        if self._reader is not None:
            done, _ = await asyncio.wait({self._reader}, timeout=_READER_SHUTDOWN_TIMEOUT_S)
            if not done:
                self._reader.cancel()

        self._pending.reject_all(BackendTerminatedError("bridge closed", returncode=self._returncode))

    async def __aenter__(self) -> "ExecutionBridge":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_alive(self) -> bool:
        return self._reader is not None and not self._exited and not self._closed

    # -------------------------
    # Receive side
    # -------------------------

    async def _read_loop(self) -> None:
        try:
            async for line in self._transport.lines():
                if not line.strip():
                    continue
                try:
                    self._dispatch(line)
                except Exception as exc:
                    logger.warning("Dropping backend line that failed dispatch: %s", exc)
            self._returncode = await self._transport.wait()
        except Exception as exc:
            logger.error("Backend reader failed: %s", exc)

        self._exited = True
        rejected = self._pending.reject_all(self._terminated_error())
        logger.debug("Backend exited with %s; rejected %d pending", self._returncode, rejected)

    def _dispatch(self, line: bytes) -> None:
        try:
            response = decode_response(line)
        except ProtocolError as exc:
            logger.debug("Dropping backend line: %s", exc)
            return

        if isinstance(response, SuccessResponse):
            matched = self._pending.resolve(response.id, response.outputs)
        elif isinstance(response, FailureResponse):
            matched = self._pending.reject(
                response.id, ExecutionError(response.message, kind=response.kind)
            )
        else:
            matched = False

        if not matched:
            logger.debug("Dropping response for unknown id %r", response.id)

    def _terminated_error(self) -> BackendTerminatedError:
        return BackendTerminatedError(
            f"runner exited (code={self._returncode})", returncode=self._returncode
        )

    # -------------------------
    # Send side
    # -------------------------

    async def execute_graph(
        self,
        graph: Dict[str, Any],
        inputs: Dict[str, Any],
        expected_outputs: Dict[str, Any],
        context_options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, RuntimeTensor]:
        """
        Send one execute_graph request and await its outputs.

        Raises:
            ExecutionError: backend answered ok=false.
            BackendTerminatedError: backend exited before answering, or
                was already gone.
        """
        if self._exited:
            raise self._terminated_error()
        if self._closed or self._reader is None:
            raise BackendTerminatedError("bridge is not running", returncode=self._returncode)

        request = ExecuteGraphRequest(
            id=str(uuid.uuid4()),
            graph=graph,
            inputs=inputs,
            expected_outputs=expected_outputs,
            context_options=dict(context_options or {}),
        )
        payload = encode_request(request)

        future = self._pending.register(request.id)
        try:
            await self._transport.send_line(payload)
        except BaseException:
            self._pending.discard(request.id)
            raise

        return await future

    async def execute(
        self,
        normalized: NormalizedGraph,
        context_options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, RuntimeTensor]:
        return await self.execute_graph(
            normalized.document.to_dict(),
            normalized.wire_inputs(),
            normalized.wire_expected_outputs(),
            context_options,
        )


__all__ = ["ExecutionBridge"]
