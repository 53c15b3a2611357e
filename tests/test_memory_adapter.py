"""Tests for the in-memory storage adapters."""

from __future__ import annotations

import pytest

from stowage.adapters import (
    BasicMemoryStorageAdapter,
    MemoryStorageAdapter,
    ObjectNotFoundError,
    PutOptions,
    supports_copy,
    supports_move,
)

OPTIONS = PutOptions(content_type="text/plain")


class TestMemoryStorageAdapter:
    """Tests for MemoryStorageAdapter."""

    @pytest.mark.asyncio
    async def test_put_exists_stream(self, memory_adapter: MemoryStorageAdapter) -> None:
        await memory_adapter.put("a/b.txt", b"hello", OPTIONS)

        assert await memory_adapter.exists("a/b.txt")
        assert not await memory_adapter.exists("a/c.txt")
        assert [c async for c in memory_adapter.stream("a/b.txt")] == [b"hello"]
        assert memory_adapter.files["a/b.txt"].options == OPTIONS

    @pytest.mark.asyncio
    async def test_list_sorted_with_prefix(self, memory_adapter: MemoryStorageAdapter) -> None:
        for key in ("b/2.txt", "a/1.txt", "b/1.txt"):
            await memory_adapter.put(key, b"x", OPTIONS)

        assert await memory_adapter.list() == ["a/1.txt", "b/1.txt", "b/2.txt"]
        assert await memory_adapter.list("b/") == ["b/1.txt", "b/2.txt"]

    @pytest.mark.asyncio
    async def test_delete_idempotent(self, memory_adapter: MemoryStorageAdapter) -> None:
        await memory_adapter.put("a.txt", b"x", OPTIONS)
        await memory_adapter.delete("a.txt")
        await memory_adapter.delete("a.txt")

        assert memory_adapter.files == {}
        assert memory_adapter.calls["delete"] == 2

    @pytest.mark.asyncio
    async def test_stream_missing_is_empty(self, memory_adapter: MemoryStorageAdapter) -> None:
        assert [c async for c in memory_adapter.stream("missing")] == []

    @pytest.mark.asyncio
    async def test_copy_and_move(self, memory_adapter: MemoryStorageAdapter) -> None:
        await memory_adapter.put("src.txt", b"data", OPTIONS)

        await memory_adapter.copy("src.txt", "copy.txt")
        await memory_adapter.move("src.txt", "moved.txt")

        assert sorted(memory_adapter.files) == ["copy.txt", "moved.txt"]
        assert memory_adapter.read("moved.txt") == b"data"

    @pytest.mark.asyncio
    async def test_copy_missing_source(self, memory_adapter: MemoryStorageAdapter) -> None:
        with pytest.raises(ObjectNotFoundError):
            await memory_adapter.copy("missing.txt", "dst.txt")
        with pytest.raises(ObjectNotFoundError):
            await memory_adapter.move("missing.txt", "dst.txt")


class TestCapabilities:
    """Copy/move capability detection."""

    def test_full_adapter(self, memory_adapter: MemoryStorageAdapter) -> None:
        assert supports_copy(memory_adapter)
        assert supports_move(memory_adapter)

    def test_basic_adapter(self, basic_adapter: BasicMemoryStorageAdapter) -> None:
        assert not supports_copy(basic_adapter)
        assert not supports_move(basic_adapter)
        assert basic_adapter.backend_name == "memory-basic"

    @pytest.mark.asyncio
    async def test_basic_adapter_delegates(self, basic_adapter: BasicMemoryStorageAdapter) -> None:
        await basic_adapter.put("a.txt", b"x", OPTIONS)

        assert await basic_adapter.list() == ["a.txt"]
        assert [c async for c in basic_adapter.stream("a.txt")] == [b"x"]
        assert basic_adapter.calls["put"] == 1
