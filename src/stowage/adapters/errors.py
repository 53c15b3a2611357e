"""Adapter-level error types.

Raised by the bundled adapters. The engine wraps any adapter exception into
StorageError(ADAPTER_FAILURE) with the original chained, so these types are
visible to callers through ``StorageError.__cause__``.
"""

from __future__ import annotations


class AdapterError(Exception):
    """Base exception for adapter failures.

    Attributes:
        message: Human-readable error message.
        key: Object key associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key

    def __str__(self) -> str:
        if self.key:
            return f"{self.message} key={self.key}"
        return self.message


class ObjectNotFoundError(AdapterError):
    """Raised when a source object does not exist (copy/move)."""

    def __init__(self, message: str = "Object not found", *, key: str | None = None) -> None:
        super().__init__(message, key=key)


class PathTraversalError(AdapterError):
    """Raised when a key would escape the backend's storage root.

    Covers ``..`` segments, absolute paths, drive letters and null bytes.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        key: str | None = None,
    ) -> None:
        super().__init__(message, key=key)


class StorageBackendError(AdapterError):
    """Raised when the backend itself fails (disk full, permission denied)."""

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key)
        self.cause = cause
