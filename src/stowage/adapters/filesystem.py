"""Filesystem storage backend.

Provides local filesystem storage for development and testing with:
- Keys mirrored as relative paths under an objects directory
- Path traversal protection
- Atomic writes (temp file + replace)
- Content type and cache metadata kept in JSON sidecars

Environment Variables:
    STOWAGE_FILESYSTEM_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / stowage_objects)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from stowage.adapters.base import PutOptions, StorageAdapter
from stowage.adapters.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from stowage.keys import SEPARATOR
from stowage.payload import CHUNK_SIZE, AdapterBody, iter_body

logger = logging.getLogger(__name__)

STOWAGE_FILESYSTEM_BASE_DIR_ENV = "STOWAGE_FILESYSTEM_BASE_DIR"

_OBJECTS_DIR = "objects"
_META_DIR = "meta"
_TMP_DIR = "tmp"
_META_SUFFIX = ".json"


def default_base_dir() -> Path:
    """Storage root used when no base directory is configured."""
    return Path(tempfile.gettempdir()) / "stowage_objects"


def _is_path_traversal(key: str) -> bool:
    """Check if a key could resolve outside the objects directory.

    Detects:
    - empty keys
    - ".." and "." segments
    - absolute paths (leading / or ~) and Windows drive letters
    - backslashes and null bytes
    """
    if not key:
        return True
    if "\x00" in key or "\\" in key:
        return True
    if key.startswith(("/", "~")):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    return any(segment in ("", ".", "..") for segment in key.split(SEPARATOR))


def _validate_key(key: str) -> None:
    if _is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            key=key,
        )


class FilesystemStorageAdapter(StorageAdapter):
    """Filesystem-based adapter with copy and move support.

    Objects are stored in a directory structure:
        {base_dir}/objects/{key}          # content
        {base_dir}/meta/{key}.json        # PutOptions
        {base_dir}/tmp/                   # in-flight writes

    Blocking file I/O runs in worker threads via ``asyncio.to_thread``.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                STOWAGE_FILESYSTEM_BASE_DIR env var or OS temp directory.
                StorageBuilder always passes it, resolved from its own
                environment mapping.
        """
        if base_dir is None:
            base_dir = os.environ.get(STOWAGE_FILESYSTEM_BASE_DIR_ENV)

        root = default_base_dir() if base_dir is None else Path(base_dir)

        self._base_dir = root.resolve()
        self._objects_dir = self._base_dir / _OBJECTS_DIR
        self._meta_dir = self._base_dir / _META_DIR
        self._tmp_dir = self._base_dir / _TMP_DIR
        logger.debug("FilesystemStorageAdapter initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _object_path(self, key: str) -> Path:
        _validate_key(key)
        path = self._objects_dir.joinpath(*key.split(SEPARATOR))
        return self._ensure_resolved_within(path, self._objects_dir, key)

    def _meta_path(self, key: str) -> Path:
        _validate_key(key)
        parts = key.split(SEPARATOR)
        parts[-1] = parts[-1] + _META_SUFFIX
        path = self._meta_dir.joinpath(*parts)
        return self._ensure_resolved_within(path, self._meta_dir, key)

    def _ensure_resolved_within(self, path: Path, root: Path, key: str) -> Path:
        """Ensure a path resolves within root (symlinks included)."""
        resolved = path.resolve()
        try:
            resolved.relative_to(root.resolve())
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                key=key,
            ) from e
        return path

    def _new_tmp_file(self) -> Path:
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        return self._tmp_dir / f"{uuid.uuid4().hex}.tmp"

    def _write_meta(self, key: str, options: PutOptions) -> None:
        meta_path = self._meta_path(key)
        tmp_file = self._new_tmp_file()
        payload = {
            "content_type": options.content_type,
            "cache_control": options.cache_control,
            "public": options.public,
        }
        try:
            tmp_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.replace(meta_path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write metadata: {e}",
                key=key,
                cause=e,
            ) from e

    def read_meta(self, key: str) -> dict[str, Any] | None:
        """Return the stored PutOptions for key as a dict, or None."""
        meta_path = self._meta_path(key)
        if not meta_path.is_file():
            return None
        try:
            data: dict[str, Any] = json.loads(meta_path.read_text(encoding="utf-8"))
            return data
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read metadata for %s: %s", key, e)
            return None

    async def put(self, key: str, body: AdapterBody, options: PutOptions) -> None:
        target = self._object_path(key)
        tmp_file = await asyncio.to_thread(self._new_tmp_file)
        handle = await asyncio.to_thread(tmp_file.open, "wb")
        size = 0
        try:
            async for chunk in iter_body(body):
                await asyncio.to_thread(handle.write, chunk)
                size += len(chunk)
            await asyncio.to_thread(handle.close)
            await asyncio.to_thread(self._commit, tmp_file, target, key)
        except BaseException:
            handle.close()
            tmp_file.unlink(missing_ok=True)
            raise

        await asyncio.to_thread(self._write_meta, key, options)
        logger.debug("Stored object: key=%s size=%d", key, size)

    def _commit(self, tmp_file: Path, target: Path, key: str) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.replace(target)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write content: {e}",
                key=key,
                cause=e,
            ) from e

    def _delete_sync(self, key: str) -> None:
        target = self._object_path(key)
        try:
            target.unlink(missing_ok=True)
            self._meta_path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                key=key,
                cause=e,
            ) from e
        self._prune_empty_dirs(target.parent, self._objects_dir)
        self._prune_empty_dirs(self._meta_path(key).parent, self._meta_dir)

    def _prune_empty_dirs(self, directory: Path, root: Path) -> None:
        while directory != root and directory.is_dir():
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    def _list_sync(self, prefix: str | None) -> list[str]:
        if not self._objects_dir.is_dir():
            return []
        keys: list[str] = []
        for path in self._objects_dir.rglob("*"):
            if not path.is_file():
                continue
            key = path.relative_to(self._objects_dir).as_posix()
            if not prefix or key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    async def list(self, prefix: str | None = None) -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    async def exists(self, key: str) -> bool:
        target = self._object_path(key)
        return await asyncio.to_thread(target.is_file)

    async def stream(self, key: str) -> AsyncIterator[bytes]:
        target = self._object_path(key)
        if not await asyncio.to_thread(target.is_file):
            return
        handle = await asyncio.to_thread(target.open, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            await asyncio.to_thread(handle.close)

    def _copy_sync(self, from_key: str, to_key: str, *, remove_source: bool) -> None:
        source = self._object_path(from_key)
        target = self._object_path(to_key)
        if not source.is_file():
            raise ObjectNotFoundError(key=from_key)
        if source == target:
            return

        source_meta = self._meta_path(from_key)
        target_meta = self._meta_path(to_key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if remove_source:
                source.replace(target)
            else:
                tmp_file = self._new_tmp_file()
                shutil.copyfile(source, tmp_file)
                tmp_file.replace(target)
            if source_meta.is_file():
                target_meta.parent.mkdir(parents=True, exist_ok=True)
                if remove_source:
                    source_meta.replace(target_meta)
                else:
                    shutil.copyfile(source_meta, target_meta)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to {'move' if remove_source else 'copy'} object: {e}",
                key=from_key,
                cause=e,
            ) from e

        if remove_source:
            self._prune_empty_dirs(source.parent, self._objects_dir)
            self._prune_empty_dirs(source_meta.parent, self._meta_dir)

    async def copy(self, from_key: str, to_key: str) -> None:
        await asyncio.to_thread(self._copy_sync, from_key, to_key, remove_source=False)

    async def move(self, from_key: str, to_key: str) -> None:
        await asyncio.to_thread(self._copy_sync, from_key, to_key, remove_source=True)
