"""Storage façade.

StorageManager composes key resolution, scopes, content-type inference,
upload policies, replace strategies and hooks on top of a StorageAdapter.
Handles are immutable: ``scope()`` and ``path()`` return new handles sharing
the same configuration and adapter.

Every "path or URL" argument is resolved the same way:
    - an absolute URL must belong to the configured base URL and resolves to
      the key it encodes;
    - a path already starting with the handle's prefix is used as-is;
    - any other path is joined under the handle's prefix.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

import httpx

from stowage.adapters.base import PutOptions, StorageAdapter, supports_copy, supports_move
from stowage.config import StorageConfig
from stowage.errors import ErrorCode, Operation, StorageError
from stowage.hooks import HookEvent, HookPayload, UploadSource, dispatch
from stowage.keys import (
    SEPARATOR,
    InputKind,
    ResolvedDestination,
    get_basename,
    get_extension,
    join_segments,
    normalize_key,
    parse_location,
    resolve_destination_key,
    split_key,
    strip_base_url,
    strip_extension,
    to_url,
)
from stowage.mime import normalize_content_type
from stowage.models import FileDescriptor, ReplaceStrategy, UploadOptions
from stowage.payload import Payload, decode_base64, from_file, normalize_body
from stowage.policies import check_upload_policy, enforce_stream_limit
from stowage.tracing import (
    KEY_DIGEST_ATTRIBUTE,
    record_key,
    traced_storage_operation,
    traced_stream,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PathContext:
    """Key prefix carried by a handle.

    Attributes:
        root: Global base path or the resolved scope root.
        segments: Sub-paths appended with ``path()``, in call order.
    """

    root: str = ""
    segments: tuple[str, ...] = ()

    @property
    def prefix(self) -> str:
        return join_segments(self.root, *self.segments)

    def with_root(self, root: str) -> PathContext:
        return replace(self, root=root)

    def with_segment(self, segment: str) -> PathContext:
        return replace(self, segments=(*self.segments, segment))


def _coerce_options(options: UploadOptions | None, fields: dict[str, Any]) -> UploadOptions:
    if options is None:
        return UploadOptions(**fields)
    if not fields:
        return options
    return UploadOptions(**{**options.model_dump(), **fields})


def _require_destination(destination: str) -> None:
    if not normalize_key(destination):
        raise StorageError(
            ErrorCode.INVALID_PAYLOAD,
            Operation.UPLOAD,
            "Upload destination must not be empty",
            data={"destination": destination},
        )


class StorageManager:
    """Async storage façade returned by ``StorageBuilder.build()``.

    Args:
        config: Frozen runtime configuration.
        context: Path context for this handle. Defaults to the base path.
    """

    def __init__(self, config: StorageConfig, context: PathContext | None = None) -> None:
        self._config = config
        self._context = context if context is not None else PathContext(root=config.base_path)

    def __repr__(self) -> str:
        return (
            f"StorageManager(backend={self.adapter.backend_name!r}, "
            f"base_url={self._config.base_url!r}, prefix={self.prefix!r})"
        )

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def adapter(self) -> StorageAdapter:
        return self._config.adapter

    @property
    def context(self) -> PathContext:
        return self._context

    @property
    def prefix(self) -> str:
        """Key prefix applied to relative paths on this handle."""
        return self._context.prefix

    def scope(self, name: str, identifier: str | None = None) -> StorageManager:
        """Return a handle rooted at a registered scope.

        The scope root replaces the base path; sub-paths added with ``path()``
        are kept.

        Raises:
            StorageError: INVALID_SCOPE, MISSING_SCOPE_IDENTIFIER,
                UNEXPECTED_SCOPE_IDENTIFIER or INVALID_SCOPE_IDENTIFIER.
        """
        root = self._config.scopes.enter(name, identifier)
        return StorageManager(self._config, self._context.with_root(root))

    def path(self, sub_path: str) -> StorageManager:
        """Return a handle with sub_path appended to the key prefix."""
        segment = normalize_key(sub_path)
        if not segment:
            return StorageManager(self._config, self._context)
        return StorageManager(self._config, self._context.with_segment(segment))

    def _under_prefix(self, key: str) -> bool:
        prefix = self.prefix
        return not prefix or key.startswith(prefix + SEPARATOR)

    def resolve(self, path_or_url: str) -> str:
        """Resolve a "path or URL" argument into a full key.

        Raises:
            StorageError: INVALID_PATH_HOST for URLs outside the base URL.
        """
        location = parse_location(path_or_url)
        if location.kind is InputKind.URL:
            return strip_base_url(location.raw, self._config.base_url)

        key = normalize_key(location.raw)
        if self._under_prefix(key):
            return key
        return join_segments(self.prefix, key)

    def resolve_destination(
        self,
        destination: str,
        content_type: str | None = None,
    ) -> ResolvedDestination:
        """Resolve an upload destination, inferring a missing extension."""
        normalized = normalize_key(destination)
        if self.prefix and self._under_prefix(normalized):
            root, segments = "", ()
        else:
            root, segments = self._context.root, self._context.segments
        resolved = resolve_destination_key(
            normalized,
            content_type,
            self._config.content_types,
            root=root,
            segments=segments,
        )
        logger.debug("Resolved destination %r -> %s", destination, resolved.key)
        return resolved

    def url_for(self, key: str) -> str:
        return to_url(self._config.base_url, key)

    def _descriptor(
        self,
        key: str,
        content_type: str | None = None,
        size: int | None = None,
    ) -> FileDescriptor:
        name = get_basename(key)
        return FileDescriptor(
            path=key,
            url=self.url_for(key),
            name=name,
            extension=get_extension(name),
            content_type=content_type or self._config.content_types.resolve(name),
            size=size,
        )

    async def _adapter_call(
        self,
        operation: Operation,
        key: str,
        method: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> T:
        try:
            return await method(*args)
        except StorageError:
            raise
        except Exception as e:
            logger.error("Adapter %s failed on %s: %s", operation, key, e)
            raise StorageError.adapter_failure(
                operation,
                e,
                key=key,
                backend=self.adapter.backend_name,
            ) from e

    async def _fire(self, payload: HookPayload) -> None:
        await dispatch(self._config.hooks, payload)

    def _record_key(self, key: str, attribute: str = KEY_DIGEST_ATTRIBUTE) -> None:
        if self._config.tracing_enabled:
            record_key(key, attribute)

    @traced_storage_operation("get")
    async def get(self, path_or_url: str) -> FileDescriptor | None:
        """Return the descriptor for an existing object, or None.

        No bytes are read; the content type is inferred from the key.
        """
        key = self.resolve(path_or_url)
        self._record_key(key)
        found = await self._adapter_call(Operation.GET, key, self.adapter.exists, key)
        if not found:
            logger.debug("get: %s not found", key)
            return None
        return self._descriptor(key)

    @traced_storage_operation("list")
    async def list(self, prefix: str | None = None) -> list[FileDescriptor]:
        """List objects under prefix, or under this handle's prefix when omitted."""
        if prefix:
            key_prefix = self.resolve(prefix)
            if prefix.endswith(SEPARATOR) and key_prefix:
                key_prefix += SEPARATOR
        else:
            key_prefix = self.prefix + SEPARATOR if self.prefix else ""

        keys = await self._adapter_call(
            Operation.LIST, key_prefix, self.adapter.list, key_prefix or None
        )
        return [self._descriptor(k) for k in keys]

    def stream(self, path_or_url: str) -> AsyncIterator[bytes]:
        """Return a lazy byte sequence for an object.

        The key is resolved immediately; the adapter is only called once
        iteration starts. The sequence is finite and not restartable, and
        empty when the object does not exist.

        Raises:
            StorageError: INVALID_PATH_HOST on resolution; ADAPTER_FAILURE
                during iteration.
        """
        key = self.resolve(path_or_url)
        chunks = self._stream_chunks(key)
        if not self._config.tracing_enabled:
            return chunks
        return traced_stream(chunks, key=key, backend=self.adapter.backend_name)

    async def _stream_chunks(self, key: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.adapter.stream(key):
                yield chunk
        except StorageError:
            raise
        except Exception as e:
            logger.error("Adapter stream failed on %s: %s", key, e)
            raise StorageError.adapter_failure(
                Operation.STREAM,
                e,
                key=key,
                backend=self.adapter.backend_name,
            ) from e

    @traced_storage_operation("upload")
    async def upload(
        self,
        body: Any,
        destination: str,
        options: UploadOptions | None = None,
        **option_fields: Any,
    ) -> FileDescriptor:
        """Upload a body to destination.

        Args:
            body: bytes-like object, (async) iterable of bytes, or binary
                file-like object.
            destination: Path relative to this handle. An extension is
                inferred from the content type when missing.
            options: Upload options.
            **option_fields: UploadOptions fields, overriding options.

        Returns:
            Descriptor of the stored object.

        Raises:
            StorageError: INVALID_PAYLOAD, UPLOAD_POLICY_VIOLATION,
                HOOK_FAILED or ADAPTER_FAILURE.
        """
        opts = _coerce_options(options, option_fields)
        payload = normalize_body(body, declared_size=opts.size)
        return await self._upload(payload, destination, opts, UploadSource.STREAM)

    @traced_storage_operation("upload")
    async def upload_from_buffer(
        self,
        data: bytes | bytearray | memoryview,
        destination: str,
        options: UploadOptions | None = None,
        **option_fields: Any,
    ) -> FileDescriptor:
        """Upload an in-memory buffer."""
        if not isinstance(data, bytes | bytearray | memoryview):
            raise StorageError(
                ErrorCode.INVALID_PAYLOAD,
                Operation.UPLOAD,
                f"Expected a bytes-like buffer, got {type(data).__name__}",
            )
        opts = _coerce_options(options, option_fields)
        return await self._upload(normalize_body(data), destination, opts, UploadSource.BUFFER)

    @traced_storage_operation("upload")
    async def upload_from_base64(
        self,
        text: str,
        destination: str,
        options: UploadOptions | None = None,
        **option_fields: Any,
    ) -> FileDescriptor:
        """Upload base64 text. A ``data:<type>;base64,`` prefix is accepted.

        The media type from a data-URL prefix is used when no content type
        was given.
        """
        opts = _coerce_options(options, option_fields)
        data, media_type = decode_base64(text)
        return await self._upload(
            normalize_body(data),
            destination,
            opts,
            UploadSource.BASE64,
            content_type_hint=media_type,
        )

    @traced_storage_operation("upload")
    async def upload_from_file(
        self,
        file_path: str | os.PathLike[str],
        destination: str | None = None,
        options: UploadOptions | None = None,
        **option_fields: Any,
    ) -> FileDescriptor:
        """Stream a local file to storage.

        Args:
            file_path: Path of the local file.
            destination: Target path; defaults to the file's name.
        """
        opts = _coerce_options(options, option_fields)
        payload = from_file(file_path)
        target = destination if destination is not None else get_basename(str(file_path))
        return await self._upload(payload, target, opts, UploadSource.FILE)

    @traced_storage_operation("upload")
    async def upload_from_url(
        self,
        source_url: str,
        destination: str,
        options: UploadOptions | None = None,
        **option_fields: Any,
    ) -> FileDescriptor:
        """Fetch a remote object over HTTP and upload it.

        The response Content-Type is used when no content type was given.

        Raises:
            StorageError: FETCH_FAILED (operation ``fetch``) on transport
                errors and non-2xx responses.
        """
        opts = _coerce_options(options, option_fields)
        _require_destination(destination)
        data, header_type = await self._fetch(source_url)
        return await self._upload(
            normalize_body(data),
            destination,
            opts,
            UploadSource.URL,
            content_type_hint=header_type,
            source_url=source_url,
        )

    async def _fetch(self, source_url: str) -> tuple[bytes, str | None]:
        logger.info("Fetching upload source %s", source_url)
        try:
            async with self._config.http_client_factory() as client:
                response = await client.get(source_url)
        except httpx.HTTPError as e:
            raise StorageError(
                ErrorCode.FETCH_FAILED,
                Operation.FETCH,
                f"Failed to fetch {source_url}: {e}",
                data={"source_url": source_url},
                cause=e,
            ) from e

        if not response.is_success:
            raise StorageError(
                ErrorCode.FETCH_FAILED,
                Operation.FETCH,
                f"Failed to fetch {source_url}: {response.status_code} {response.reason_phrase}",
                data={"source_url": source_url, "status": response.status_code},
            )

        header = response.headers.get("content-type")
        content_type = normalize_content_type(header) if header else None
        return response.content, content_type or None

    async def _upload(
        self,
        payload: Payload,
        destination: str,
        options: UploadOptions,
        source: UploadSource,
        *,
        content_type_hint: str | None = None,
        source_url: str | None = None,
    ) -> FileDescriptor:
        _require_destination(destination)
        explicit_type = options.content_type or content_type_hint
        resolved = self.resolve_destination(destination, explicit_type)
        key = resolved.key
        self._record_key(key)
        content_type = self._config.content_types.resolve(resolved.basename, explicit_type)
        size = payload.size

        policies = self._config.policies
        check_upload_policy(size, content_type, resolved.basename, policies, key=key)

        body = payload.body
        if payload.is_stream and policies.max_file_size is not None:
            limit = policies.max_file_size
            body = enforce_stream_limit(body, limit, key=key)  # type: ignore[arg-type]

        if options.replace is not None:
            await self._apply_replace(resolved, options.replace)

        started = HookPayload(
            event=HookEvent.UPLOAD_STARTED,
            path=key,
            content_type=content_type,
            size=size,
            source=source,
            source_url=source_url,
        )
        await self._fire(started)

        put_options = PutOptions(
            content_type=content_type,
            cache_control=options.cache_control,
            public=options.public,
        )
        await self._adapter_call(Operation.UPLOAD, key, self.adapter.put, key, body, put_options)

        stored = self._descriptor(key, content_type, size)
        await self._fire(replace(started, event=HookEvent.UPLOAD_SUCCESS, file=stored))

        logger.info(
            "Uploaded %s (content_type=%s size=%s source=%s)",
            key,
            content_type,
            size,
            source,
        )
        return stored

    async def _apply_replace(
        self, resolved: ResolvedDestination, strategy: ReplaceStrategy
    ) -> None:
        key = resolved.key
        if strategy is ReplaceStrategy.BY_FILENAME_AND_EXTENSION:
            await self._adapter_call(Operation.UPLOAD, key, self.adapter.delete, key)
            return

        directory, _ = split_key(resolved.key)
        list_prefix = directory + SEPARATOR if directory else None
        keys = await self._adapter_call(
            Operation.UPLOAD, resolved.key, self.adapter.list, list_prefix
        )
        for existing in keys:
            _, existing_base = split_key(existing)
            if strip_extension(existing_base) != resolved.name:
                continue
            logger.debug("Replacing %s with %s", existing, resolved.key)
            await self._adapter_call(Operation.UPLOAD, existing, self.adapter.delete, existing)

    @traced_storage_operation("delete")
    async def delete(self, path_or_url: str) -> None:
        """Delete an object. Deleting an absent object is not an error."""
        key = self.resolve(path_or_url)
        self._record_key(key)
        started = HookPayload(event=HookEvent.DELETE_STARTED, path=key)
        await self._fire(started)
        await self._adapter_call(Operation.DELETE, key, self.adapter.delete, key)
        await self._fire(
            replace(started, event=HookEvent.DELETE_SUCCESS, file=self._descriptor(key))
        )
        logger.info("Deleted %s", key)

    @traced_storage_operation("copy")
    async def copy(self, source: str, destination: str) -> FileDescriptor:
        """Copy an object using the adapter's native copy.

        Raises:
            StorageError: COPY_NOT_SUPPORTED before any hook or adapter call
                when the adapter has no copy capability.
        """
        adapter = self.adapter
        if not supports_copy(adapter):
            raise StorageError(
                ErrorCode.COPY_NOT_SUPPORTED,
                Operation.COPY,
                f"Adapter {adapter.backend_name!r} does not support copy",
                data={"backend": adapter.backend_name},
            )
        return await self._transfer(
            Operation.COPY,
            source,
            destination,
            adapter.copy,  # type: ignore[attr-defined]
            HookEvent.COPY_STARTED,
            HookEvent.COPY_SUCCESS,
        )

    @traced_storage_operation("move")
    async def move(self, source: str, destination: str) -> FileDescriptor:
        """Move an object using the adapter's native move.

        Raises:
            StorageError: MOVE_NOT_SUPPORTED before any hook or adapter call
                when the adapter has no move capability.
        """
        adapter = self.adapter
        if not supports_move(adapter):
            raise StorageError(
                ErrorCode.MOVE_NOT_SUPPORTED,
                Operation.MOVE,
                f"Adapter {adapter.backend_name!r} does not support move",
                data={"backend": adapter.backend_name},
            )
        return await self._transfer(
            Operation.MOVE,
            source,
            destination,
            adapter.move,  # type: ignore[attr-defined]
            HookEvent.MOVE_STARTED,
            HookEvent.MOVE_SUCCESS,
        )

    async def _transfer(
        self,
        operation: Operation,
        source: str,
        destination: str,
        method: Callable[[str, str], Awaitable[None]],
        started_event: HookEvent,
        success_event: HookEvent,
    ) -> FileDescriptor:
        from_key = self.resolve(source)
        to_key = self.resolve(destination)
        self._record_key(from_key, "stowage.source_key_sha256")
        self._record_key(to_key)

        started = HookPayload(event=started_event, path=to_key, from_key=from_key, to_key=to_key)
        await self._fire(started)
        await self._adapter_call(operation, from_key, method, from_key, to_key)

        stored = self._descriptor(to_key)
        await self._fire(replace(started, event=success_event, file=stored))
        logger.info("%s %s -> %s", operation.value.capitalize(), from_key, to_key)
        return stored
