"""
webnn-conformance error system

Design goals:
- Single canonical error code namespace (E#### format only)
- Explicit category per error (not prefix-derived)
- Stable exit codes for CI integration
- Machine-safe formatting (no emoji, no decoration)
- Structured details dict for positional diagnostics
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------
# Exit Codes (Process-Level Contract)
# ---------------------------------------------------------------------

class ExitCode(int, Enum):
    """
    Stable process exit codes.
    These values are part of the public CLI contract.
    """
    OK = 0
    FAILURES = 1
    INVALID_INVOCATION = 2


# ---------------------------------------------------------------------
# Error Categories (Explicit, Not Derived)
# ---------------------------------------------------------------------

class ErrorCategory(str, Enum):
    USER = "user_error"
    FIXTURE = "fixture_error"
    GRAPH = "graph_error"
    EXECUTION = "execution_error"
    VERIFICATION = "verification_error"
    INTERNAL = "internal_error"


# ---------------------------------------------------------------------
# Canonical Error Codes (Single Namespace)
# ---------------------------------------------------------------------

class ErrorCode(str, Enum):
    # 1xxx – User / Invocation
    INVALID_INVOCATION = "E1001"
    INVALID_CONFIG = "E1002"

    # 2xxx – Fixtures
    EXTRACTION_FAILED = "E2001"

    # 3xxx – Graph construction
    INVALID_GRAPH = "E3001"

    # 4xxx – Backend execution
    EXECUTION_FAILED = "E4001"
    BACKEND_TERMINATED = "E4002"
    PROTOCOL_VIOLATION = "E4003"

    # 5xxx – Verification
    VERIFICATION_FAILED = "E5001"

    # 9xxx – Internal
    FATAL = "E9001"


# ---------------------------------------------------------------------
# Base Error
# ---------------------------------------------------------------------

@dataclass
class ConformanceError(Exception):
    """
    Base class for all webnn-conformance domain errors.

    Invariants:
    - error_code is immutable
    - category is explicit
    - exit_code is explicit
    - details dict for structured diagnostic info
    """

    message: str
    error_code: ErrorCode
    category: ErrorCategory
    exit_code: ExitCode
    stage: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not isinstance(self.error_code, ErrorCode):
            raise TypeError("error_code must be an ErrorCode enum")

        if not isinstance(self.category, ErrorCategory):
            raise TypeError("category must be an ErrorCategory enum")

        if not isinstance(self.exit_code, ExitCode):
            raise TypeError("exit_code must be an ExitCode enum")

        self.context = self.context or {}
        self.details = self.details or {}

        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    # -----------------------------------------------------------------
    # Structured Output
    # -----------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        """
        JSON-safe representation for reports.
        """
        return {
            "code": self.error_code.value,
            "category": self.category.value,
            "message": self.message,
            "stage": self.stage,
            "context": self.context,
            "details": self.details,
        }

    # -----------------------------------------------------------------
    # Plain Text (Machine Safe)
    # -----------------------------------------------------------------

    def format(self) -> str:
        """
        Plain multi-line representation.
        No emoji, no decoration.
        """
        lines = [
            f"{self.__class__.__name__}: {self.message}",
            f"  code: {self.error_code.value}",
            f"  category: {self.category.value}",
        ]

        if self.stage:
            lines.append(f"  stage: {self.stage}")

        if self.context:
            lines.append("  context:")
            for k, v in self.context.items():
                lines.append(f"    {k}: {v}")

        if self.details:
            lines.append("  details:")
            for k, v in self.details.items():
                lines.append(f"    {k}: {v}")

        return "\n".join(lines)


# ---------------------------------------------------------------------
# Domain-Specific Errors
# ---------------------------------------------------------------------

class InvalidInvocationError(ConformanceError):
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.INVALID_INVOCATION),
            category=ErrorCategory.USER,
            exit_code=ExitCode.INVALID_INVOCATION,
            **kwargs,
        )


class ExtractionError(ConformanceError):
    def __init__(self, message: str, source_name: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.EXTRACTION_FAILED,
            category=ErrorCategory.FIXTURE,
            exit_code=ExitCode.FAILURES,
            stage="extract",
            context={"source": source_name} if source_name else None,
            **kwargs,
        )


class GraphError(ConformanceError):
    def __init__(self, message: str, operator: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_GRAPH,
            category=ErrorCategory.GRAPH,
            exit_code=ExitCode.FAILURES,
            stage="normalize",
            context={"operator": operator} if operator else None,
            **kwargs,
        )


class ExecutionError(ConformanceError):
    """Backend reported failure for a request."""

    def __init__(self, message: str, kind: str = "RuntimeExecutionError", **kwargs):
        self.kind = kind
        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.EXECUTION_FAILED),
            category=ErrorCategory.EXECUTION,
            exit_code=ExitCode.FAILURES,
            stage="execute",
            context={"kind": kind},
            **kwargs,
        )


class BackendTerminatedError(ExecutionError):
    """The backend process exited; no request can complete afterwards."""

    def __init__(self, message: str, returncode: Optional[int] = None, **kwargs):
        self.returncode = returncode
        super().__init__(
            message,
            kind="ProcessExit",
            error_code=ErrorCode.BACKEND_TERMINATED,
            details={"returncode": returncode},
            **kwargs,
        )


class ProtocolError(ConformanceError):
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.PROTOCOL_VIOLATION,
            category=ErrorCategory.EXECUTION,
            exit_code=ExitCode.FAILURES,
            stage="decode",
            **kwargs,
        )


class VerificationError(ConformanceError):
    def __init__(self, message: str, output_name: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.VERIFICATION_FAILED,
            category=ErrorCategory.VERIFICATION,
            exit_code=ExitCode.FAILURES,
            stage="verify",
            context={"output": output_name} if output_name else None,
            **kwargs,
        )


class FatalError(ConformanceError):
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.FATAL,
            category=ErrorCategory.INTERNAL,
            exit_code=ExitCode.FAILURES,
            stage="run",
            **kwargs,
        )


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

__all__ = [
    "ExitCode",
    "ErrorCategory",
    "ErrorCode",
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
