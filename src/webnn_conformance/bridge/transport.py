"""
Byte-line transports for the execution protocol.

The bridge only needs four things from a transport: send a line, iterate
received lines, learn the exit status and shut down. SubprocessTransport
provides them over a child process's stdin/stdout.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Sequence

from ..core.errors import BackendTerminatedError, ExecutionError

logger = logging.getLogger(__name__)

# Output tensors travel inline, so single response lines can be large.
DEFAULT_LINE_LIMIT = 256 * 1024 * 1024
DEFAULT_TERMINATE_TIMEOUT_S = 5.0


class Transport(ABC):
    """Abstract line transport."""

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def send_line(self, data: bytes) -> None:
        """Write one newline-terminated message."""
        pass

    @abstractmethod
    def lines(self) -> AsyncIterator[bytes]:
        """Received lines, ending at EOF."""
        pass

    @abstractmethod
    async def wait(self) -> Optional[int]:
        """Wait for the peer to exit; returns its exit status."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Shut down; safe to call more than once."""
        pass


class SubprocessTransport(Transport):
    """
    Child process speaking the protocol on stdin/stdout.

    stderr is inherited so backend diagnostics reach the terminal directly.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        line_limit: int = DEFAULT_LINE_LIMIT,
        terminate_timeout_s: float = DEFAULT_TERMINATE_TIMEOUT_S,
    ):
        if not command:
            raise ExecutionError("backend command is empty", kind="SpawnError")
        self.command = list(command)
        self.cwd = cwd
        self.env = env
        self.line_limit = line_limit
        self.terminate_timeout_s = terminate_timeout_s
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._closed = False

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    async def start(self) -> None:
        if self._proc is not None:
            return
        logger.debug("Starting backend: %s", " ".join(self.command))
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                cwd=str(self.cwd) if self.cwd else None,
                env=self.env,
                limit=self.line_limit,
            )
        except OSError as exc:
            raise ExecutionError(
                f"failed to start backend {self.command[0]!r}: {exc}", kind="SpawnError"
            ) from exc

    async def send_line(self, data: bytes) -> None:
        proc = self._proc
        if proc is None or proc.stdin is None or self._closed:
            raise BackendTerminatedError("backend is not running")
        if proc.returncode is not None:
            raise BackendTerminatedError(
                f"runner exited (code={proc.returncode})", returncode=proc.returncode
            )
        try:
            proc.stdin.write(data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise BackendTerminatedError(
                f"runner stdin closed: {exc}", returncode=proc.returncode
            ) from exc

    async def lines(self) -> AsyncIterator[bytes]:
        if self._proc is None or self._proc.stdout is None:
            return
        stdout = self._proc.stdout
        while True:
            try:
                line = await stdout.readline()
            except ValueError as exc:
                # Over-long line; the reader has already discarded it.
                logger.debug("Dropping oversized backend line: %s", exc)
                continue
            if not line:
                return
            yield line

    async def wait(self) -> Optional[int]:
        if self._proc is None:
            return None
        return await self._proc.wait()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        proc = self._proc
        if proc is None:
            return

        if proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()

        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                logger.debug("Backend already exited before terminate")

        try:
            await asyncio.wait_for(proc.wait(), timeout=self.terminate_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Backend did not exit after SIGTERM; killing pid %s", proc.pid)
            proc.kill()
            await proc.wait()


__all__ = ["Transport", "SubprocessTransport", "DEFAULT_LINE_LIMIT"]
