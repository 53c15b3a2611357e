"""Tests for upload payload normalization."""

from __future__ import annotations

import base64
import io
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from stowage.errors import ErrorCode, StorageError
from stowage.payload import (
    decode_base64,
    from_file,
    iter_body,
    normalize_body,
    read_body,
    split_data_url,
)


async def _agen(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


class TestNormalizeBody:
    """Tests for normalize_body."""

    def test_bytes_like(self) -> None:
        for body in (b"abc", bytearray(b"abc"), memoryview(b"abc")):
            payload = normalize_body(body)
            assert payload.body == b"abc"
            assert payload.size == 3
            assert not payload.is_stream

    @pytest.mark.asyncio
    async def test_async_iterable(self) -> None:
        payload = normalize_body(_agen(b"a", b"bc"), declared_size=3)
        assert payload.is_stream
        assert payload.size == 3
        assert await read_body(payload.body) == b"abc"

    @pytest.mark.asyncio
    async def test_sync_iterable_and_file_like(self) -> None:
        assert await read_body(normalize_body([b"a", bytearray(b"b")]).body) == b"ab"
        payload = normalize_body(io.BytesIO(b"file-like"))
        assert payload.size is None
        assert await read_body(payload.body) == b"file-like"

    def test_text_rejected(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            normalize_body("hello")
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    def test_unsupported_type_rejected(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            normalize_body(42)
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_non_bytes_chunk_rejected(self) -> None:
        payload = normalize_body(["text chunk"])
        with pytest.raises(StorageError) as exc_info:
            await read_body(payload.body)
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD


class TestBase64:
    """Tests for base64 decoding."""

    def test_plain(self) -> None:
        encoded = base64.b64encode(b"hello").decode()
        assert decode_base64(encoded) == (b"hello", None)

    def test_data_url_prefix(self) -> None:
        encoded = base64.b64encode(b"\x89PNG").decode()
        data, media_type = decode_base64(f"data:image/png;base64,{encoded}")
        assert data == b"\x89PNG"
        assert media_type == "image/png"

    def test_split_without_prefix(self) -> None:
        assert split_data_url("aGk=") == (None, "aGk=")

    def test_invalid(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            decode_base64("not base64!!")
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD


class TestFiles:
    """Tests for file payloads."""

    @pytest.mark.asyncio
    async def test_from_file(self, tmp_path: Path) -> None:
        source = tmp_path / "report.pdf"
        source.write_bytes(b"%PDF-1.7 content")

        payload = from_file(source)

        assert payload.size == len(b"%PDF-1.7 content")
        assert payload.is_stream
        assert await read_body(payload.body) == b"%PDF-1.7 content"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError) as exc_info:
            from_file(tmp_path / "missing.bin")
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    def test_directory_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError) as exc_info:
            from_file(tmp_path)
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_iter_body_chunks_bytes(self) -> None:
        chunks = [c async for c in iter_body(b"abcdefg", chunk_size=3)]
        assert chunks == [b"abc", b"def", b"g"]
