"""In-memory storage backend.

Keeps objects in a dict keyed by normalized key. Intended for tests and
local development: it records how many times each method was called so tests
can assert that an operation never reached the backend.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import AsyncIterator
from dataclasses import dataclass

from stowage.adapters.base import PutOptions, StorageAdapter
from stowage.adapters.errors import ObjectNotFoundError
from stowage.keys import normalize_key
from stowage.payload import AdapterBody, iter_body, read_body

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoredFile:
    """An object held by the memory backend."""

    body: bytes
    options: PutOptions


class MemoryStorageAdapter(StorageAdapter):
    """Dict-backed adapter with copy and move support.

    Attributes:
        files: Stored objects by key.
        calls: Per-method call counter.
    """

    def __init__(self) -> None:
        self.files: dict[str, StoredFile] = {}
        self.calls: Counter[str] = Counter()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def put(self, key: str, body: AdapterBody, options: PutOptions) -> None:
        self.calls["put"] += 1
        data = await read_body(body)
        self.files[normalize_key(key)] = StoredFile(body=data, options=options)
        logger.debug("memory put: %s (%d bytes)", key, len(data))

    async def delete(self, key: str) -> None:
        self.calls["delete"] += 1
        self.files.pop(normalize_key(key), None)

    async def list(self, prefix: str | None = None) -> list[str]:
        self.calls["list"] += 1
        keys = sorted(self.files)
        if not prefix:
            return keys
        return [k for k in keys if k.startswith(prefix)]

    async def exists(self, key: str) -> bool:
        self.calls["exists"] += 1
        return normalize_key(key) in self.files

    async def stream(self, key: str) -> AsyncIterator[bytes]:
        self.calls["stream"] += 1
        stored = self.files.get(normalize_key(key))
        if stored is None:
            return
        async for chunk in iter_body(stored.body):
            yield chunk

    async def copy(self, from_key: str, to_key: str) -> None:
        self.calls["copy"] += 1
        stored = self.files.get(normalize_key(from_key))
        if stored is None:
            raise ObjectNotFoundError(key=from_key)
        self.files[normalize_key(to_key)] = stored

    async def move(self, from_key: str, to_key: str) -> None:
        self.calls["move"] += 1
        source = normalize_key(from_key)
        stored = self.files.get(source)
        if stored is None:
            raise ObjectNotFoundError(key=from_key)
        self.files[normalize_key(to_key)] = stored
        if source != normalize_key(to_key):
            del self.files[source]

    def read(self, key: str) -> bytes | None:
        """Return stored bytes for key, or None. Test convenience."""
        stored = self.files.get(normalize_key(key))
        return stored.body if stored is not None else None

    def clear(self) -> None:
        """Drop every object and reset call counters."""
        self.files.clear()
        self.calls.clear()


class BasicMemoryStorageAdapter(StorageAdapter):
    """Memory adapter exposing only the required contract (no copy/move)."""

    def __init__(self) -> None:
        self._inner = MemoryStorageAdapter()

    @property
    def backend_name(self) -> str:
        return "memory-basic"

    @property
    def files(self) -> dict[str, StoredFile]:
        return self._inner.files

    @property
    def calls(self) -> Counter[str]:
        return self._inner.calls

    async def put(self, key: str, body: AdapterBody, options: PutOptions) -> None:
        await self._inner.put(key, body, options)

    async def delete(self, key: str) -> None:
        await self._inner.delete(key)

    async def list(self, prefix: str | None = None) -> list[str]:
        return await self._inner.list(prefix)

    async def exists(self, key: str) -> bool:
        return await self._inner.exists(key)

    def stream(self, key: str) -> AsyncIterator[bytes]:
        return self._inner.stream(key)
