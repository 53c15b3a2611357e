"""Stowage error types.

Every failure detected by the engine is reported as a single exception type,
StorageError, carrying a machine-readable code and the public operation that
failed. Adapter exceptions are wrapped into ADAPTER_FAILURE with the original
exception chained as ``__cause__``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Condition codes carried by StorageError."""

    INVALID_PATH_HOST = "INVALID_PATH_HOST"
    MISSING_URL = "MISSING_URL"
    ADAPTER_NOT_CONFIGURED = "ADAPTER_NOT_CONFIGURED"
    UPLOAD_POLICY_VIOLATION = "UPLOAD_POLICY_VIOLATION"
    INVALID_SCOPE = "INVALID_SCOPE"
    INVALID_SCOPE_DEFINITION = "INVALID_SCOPE_DEFINITION"
    MISSING_SCOPE_IDENTIFIER = "MISSING_SCOPE_IDENTIFIER"
    UNEXPECTED_SCOPE_IDENTIFIER = "UNEXPECTED_SCOPE_IDENTIFIER"
    INVALID_SCOPE_IDENTIFIER = "INVALID_SCOPE_IDENTIFIER"
    COPY_NOT_SUPPORTED = "COPY_NOT_SUPPORTED"
    MOVE_NOT_SUPPORTED = "MOVE_NOT_SUPPORTED"
    FETCH_FAILED = "FETCH_FAILED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    HOOK_FAILED = "HOOK_FAILED"
    ADAPTER_FAILURE = "ADAPTER_FAILURE"


class Operation(StrEnum):
    """Public operations a StorageError can be attributed to."""

    BUILD = "build"
    SCOPE = "scope"
    PATH = "path"
    GET = "get"
    UPLOAD = "upload"
    DELETE = "delete"
    LIST = "list"
    STREAM = "stream"
    COPY = "copy"
    MOVE = "move"
    FETCH = "fetch"


class StorageError(Exception):
    """Raised when a storage operation cannot complete.

    Attributes:
        code: Specific failure condition.
        operation: Public call that failed.
        message: Human-readable error message.
        data: Optional structured context (keys, violations, status codes).
        cause: Underlying exception, if the error wraps one.
    """

    def __init__(
        self,
        code: ErrorCode,
        operation: Operation,
        message: str,
        *,
        data: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.operation = operation
        self.message = message
        self.data = data or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [f"[{self.code}]", f"operation={self.operation}", self.message]
        key = self.data.get("key")
        if key:
            parts.append(f"key={key}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"StorageError(code={self.code.value!r}, operation={self.operation.value!r}, "
            f"message={self.message!r})"
        )

    @classmethod
    def adapter_failure(
        cls,
        operation: Operation,
        cause: BaseException,
        **data: Any,
    ) -> StorageError:
        """Wrap an exception raised by an adapter."""
        message = str(cause) or type(cause).__name__
        return cls(
            ErrorCode.ADAPTER_FAILURE,
            operation,
            message,
            data=data,
            cause=cause,
        )
