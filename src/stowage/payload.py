"""Upload payload normalization.

Turns the body shapes accepted by the upload entry points into the two
shapes adapters receive: ``bytes`` or an ``AsyncIterator[bytes]``.

Accepted inputs:
    - bytes, bytearray, memoryview
    - async iterables of bytes (lazy streams)
    - sync iterables of bytes (generators, lists of chunks)
    - binary file-like objects exposing ``read``
    - filesystem paths (through ``from_file``)
    - base64 text, optionally with a ``data:<type>;base64,`` prefix
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import os
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from stowage.errors import ErrorCode, Operation, StorageError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

AdapterBody = bytes | AsyncIterator[bytes]


@dataclass(frozen=True, slots=True)
class Payload:
    """A normalized upload body.

    Attributes:
        body: Raw bytes or a lazy chunk iterator.
        size: Total size in bytes, None when unknown until consumed.
    """

    body: AdapterBody
    size: int | None

    @property
    def is_stream(self) -> bool:
        return not isinstance(self.body, bytes)


def _invalid(message: str, cause: BaseException | None = None, **data: Any) -> StorageError:
    return StorageError(
        ErrorCode.INVALID_PAYLOAD,
        Operation.UPLOAD,
        message,
        data=data,
        cause=cause,
    )


async def _iter_async(chunks: AsyncIterable[Any]) -> AsyncIterator[bytes]:
    async for chunk in chunks:
        yield _as_chunk(chunk)


async def _iter_sync(chunks: Iterable[Any]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield _as_chunk(chunk)


async def _iter_reader(reader: Any, chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        chunk = await asyncio.to_thread(reader.read, chunk_size)
        if not chunk:
            break
        yield _as_chunk(chunk)


def _as_chunk(chunk: Any) -> bytes:
    if isinstance(chunk, bytes):
        return chunk
    if isinstance(chunk, bytearray | memoryview):
        return bytes(chunk)
    raise _invalid(f"Stream chunks must be bytes, got {type(chunk).__name__}")


def normalize_body(body: Any, *, declared_size: int | None = None) -> Payload:
    """Normalize an upload body.

    Args:
        body: Any supported body shape (see module docstring).
        declared_size: Caller-declared size for lazy bodies.

    Returns:
        Payload with bytes and their size, or a lazy iterator and the
        declared size (None when not declared).

    Raises:
        StorageError: INVALID_PAYLOAD for text or unsupported types.
    """
    if isinstance(body, bytes):
        return Payload(body=body, size=len(body))
    if isinstance(body, bytearray | memoryview):
        data = bytes(body)
        return Payload(body=data, size=len(data))
    if isinstance(body, str):
        raise _invalid(
            "Text bodies are not accepted; encode to bytes or use upload_from_base64"
        )
    if isinstance(body, AsyncIterable):
        return Payload(body=_iter_async(body), size=declared_size)
    if hasattr(body, "read"):
        return Payload(body=_iter_reader(body, CHUNK_SIZE), size=declared_size)
    if isinstance(body, Iterable):
        return Payload(body=_iter_sync(body), size=declared_size)
    raise _invalid(f"Unsupported upload body type: {type(body).__name__}")


def split_data_url(text: str) -> tuple[str | None, str]:
    """Split an optional data-URL prefix from base64 text.

    Returns:
        Tuple of (media type from the prefix or None, base64 payload).
    """
    if "," not in text:
        return None, text
    prefix, _, encoded = text.rpartition(",")
    media_type: str | None = None
    if prefix.startswith("data:"):
        media_type = prefix[len("data:") :].split(";", 1)[0].strip() or None
    return media_type, encoded


def decode_base64(text: str) -> tuple[bytes, str | None]:
    """Decode base64 text, accepting a data-URL prefix.

    Returns:
        Tuple of (decoded bytes, media type from the data-URL prefix or None).

    Raises:
        StorageError: INVALID_PAYLOAD if the text is not valid base64.
    """
    media_type, encoded = split_data_url(text.strip())
    compact = "".join(encoded.split())
    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise _invalid(f"Invalid base64 payload: {e}", cause=e) from e
    return data, media_type


async def iter_file(path: Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Read a file in chunks without blocking the event loop."""
    handle = await asyncio.to_thread(path.open, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(handle.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        await asyncio.to_thread(handle.close)


def from_file(path: str | os.PathLike[str]) -> Payload:
    """Build a lazy payload from a local file.

    Raises:
        StorageError: INVALID_PAYLOAD if the path is not a readable file.
    """
    file_path = Path(path)
    try:
        size = file_path.stat().st_size
    except OSError as e:
        raise _invalid(f"Cannot read upload source file: {e}", cause=e, file=file_path.name) from e
    if not file_path.is_file():
        raise _invalid("Upload source is not a regular file", file=file_path.name)
    logger.debug("Streaming upload from file %s (%d bytes)", file_path.name, size)
    return Payload(body=iter_file(file_path), size=size)


async def read_body(body: AdapterBody) -> bytes:
    """Collect an adapter body into bytes."""
    if isinstance(body, bytes):
        return body
    parts = [chunk async for chunk in body]
    return b"".join(parts)


async def iter_body(body: AdapterBody, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Iterate an adapter body chunk by chunk."""
    if isinstance(body, bytes):
        for start in range(0, len(body), chunk_size):
            yield body[start : start + chunk_size]
        return
    async for chunk in body:
        yield chunk
