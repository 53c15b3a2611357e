"""Storage OpenTelemetry tracing integration.

Provides tracing decorators and utilities for façade operations. Whether a
handle traces is fixed at build time (``StorageConfig.tracing_enabled``).

Security:
    - Never export raw keys; only their SHA-256 digest
    - Never export absolute filesystem paths or remote source URLs
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any, TypeVar, cast

from stowage.errors import StorageError
from stowage.models import FileDescriptor

logger = logging.getLogger(__name__)

TRACER_NAME = "stowage.storage"
KEY_DIGEST_ATTRIBUTE = "stowage.object_key_sha256"

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])


def key_digest(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def record_key(key: str, attribute: str = KEY_DIGEST_ATTRIBUTE) -> None:
    """Attach a key digest to the current span, if one is recording."""
    from opentelemetry import trace

    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(attribute, key_digest(key))


def _tracing_enabled(manager: Any) -> bool:
    config = getattr(manager, "config", None)
    return bool(getattr(config, "tracing_enabled", False))


def _mark_error(span: Any, error: Exception) -> None:
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(error).__name__)
    if isinstance(error, StorageError):
        span.set_attribute("stowage.error_code", error.code.value)


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace async façade operations with OpenTelemetry.

    Emits ``stowage.storage.<operation>`` spans with safe attributes only,
    on handles built with tracing enabled.

    Args:
        operation: Operation name (e.g., "upload", "get", "delete").

    Returns:
        Decorated coroutine function.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not _tracing_enabled(self):
                return await func(self, *args, **kwargs)

            from opentelemetry import trace

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"{TRACER_NAME}.{operation}") as span:
                span.set_attribute("storage.backend", _backend_name(self))
                try:
                    result = await func(self, *args, **kwargs)
                except Exception as e:
                    _mark_error(span, e)
                    raise

                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


async def traced_stream(
    chunks: AsyncIterator[bytes],
    *,
    key: str,
    backend: str,
) -> AsyncIterator[bytes]:
    """Re-yield chunks inside a ``stowage.storage.stream`` span.

    The span covers the whole iteration and records the number of bytes
    delivered, or the error that ended it.
    """
    from opentelemetry import trace

    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(f"{TRACER_NAME}.stream") as span:
        span.set_attribute("storage.backend", backend)
        span.set_attribute(KEY_DIGEST_ATTRIBUTE, key_digest(key))
        size = 0
        try:
            async for chunk in chunks:
                size += len(chunk)
                yield chunk
        except Exception as e:
            _mark_error(span, e)
            raise
        finally:
            span.set_attribute("stowage.object_size_bytes", size)


def _backend_name(manager: Any) -> str:
    adapter = getattr(manager, "adapter", None)
    return getattr(adapter, "backend_name", "unknown")


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes to span. Never adds keys or paths."""
    if isinstance(result, FileDescriptor):
        span.set_attribute(KEY_DIGEST_ATTRIBUTE, key_digest(result.path))
        span.set_attribute("stowage.content_type", result.content_type)
        if result.size is not None:
            span.set_attribute("stowage.object_size_bytes", result.size)
    elif result is None and operation == "get":
        span.set_attribute("stowage.found", False)
    elif isinstance(result, list):
        span.set_attribute("stowage.result_count", len(result))
