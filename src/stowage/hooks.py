"""Lifecycle hook dispatcher.

Hooks are notified around each mutating operation category: a ``*_started``
event before the adapter call and a ``*_success`` event after it returns.
Callbacks may be plain functions or coroutine functions. They run one after
another in registration order on the caller's task. A raising hook aborts the
enclosing operation with HOOK_FAILED; there is no failure event.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

from stowage.errors import ErrorCode, Operation, StorageError

if TYPE_CHECKING:
    from stowage.models import FileDescriptor

logger = logging.getLogger(__name__)


class HookEvent(StrEnum):
    """Lifecycle events."""

    UPLOAD_STARTED = "upload_started"
    UPLOAD_SUCCESS = "upload_success"
    DELETE_STARTED = "delete_started"
    DELETE_SUCCESS = "delete_success"
    COPY_STARTED = "copy_started"
    COPY_SUCCESS = "copy_success"
    MOVE_STARTED = "move_started"
    MOVE_SUCCESS = "move_success"

    @property
    def operation(self) -> Operation:
        return Operation(self.value.split("_", 1)[0])


class UploadSource(StrEnum):
    """How an upload payload was supplied."""

    STREAM = "stream"
    BUFFER = "buffer"
    BASE64 = "base64"
    FILE = "file"
    URL = "url"


@dataclass(frozen=True, slots=True)
class HookPayload:
    """Data passed to hook callbacks.

    Attributes:
        event: The event being fired.
        path: Resolved key the operation targets (destination for copy/move).
        file: Resulting descriptor; set on ``*_success`` events only.
        from_key: Source key for copy/move.
        to_key: Destination key for copy/move.
        content_type: Upload content type.
        size: Upload size in bytes when known.
        source: How an upload payload was supplied.
        source_url: Remote URL for uploads fetched over HTTP.
    """

    event: HookEvent
    path: str
    file: FileDescriptor | None = None
    from_key: str | None = None
    to_key: str | None = None
    content_type: str | None = None
    size: int | None = None
    source: UploadSource | None = None
    source_url: str | None = None

    @property
    def operation(self) -> Operation:
        return self.event.operation


HookCallback = Callable[[HookPayload], Awaitable[None] | None]


@dataclass(frozen=True)
class HookRegistry:
    """Immutable event -> ordered callbacks mapping."""

    _hooks: Mapping[HookEvent, tuple[HookCallback, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def add(self, event: HookEvent | str, callback: HookCallback) -> HookRegistry:
        """Return a registry with callback appended to event's list."""
        if not callable(callback):
            raise TypeError(f"Hook for {event} must be callable")
        resolved = HookEvent(event)
        hooks = dict(self._hooks)
        hooks[resolved] = (*hooks.get(resolved, ()), callback)
        return HookRegistry(_hooks=MappingProxyType(hooks))

    def callbacks(self, event: HookEvent) -> tuple[HookCallback, ...]:
        return self._hooks.get(event, ())

    def __len__(self) -> int:
        return sum(len(v) for v in self._hooks.values())


async def dispatch(registry: HookRegistry, payload: HookPayload) -> None:
    """Run every callback for payload.event in registration order.

    Raises:
        StorageError: HOOK_FAILED if a callback raises. Remaining callbacks
            for the event are skipped.
    """
    for callback in registry.callbacks(payload.event):
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
        except StorageError:
            raise
        except Exception as e:
            name = getattr(callback, "__qualname__", repr(callback))
            logger.warning("Hook %s failed for %s on %s: %s", name, payload.event, payload.path, e)
            raise StorageError(
                ErrorCode.HOOK_FAILED,
                payload.operation,
                f"Hook {name} failed on {payload.event}: {e}",
                data={"key": payload.path, "event": payload.event.value},
                cause=e,
            ) from e
