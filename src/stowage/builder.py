"""Fluent storage builder.

StorageBuilder is a frozen dataclass: every ``with_*``/``add_*``/``on*``
method returns a new builder, so a partially configured builder can be shared
and branched safely. ``build()`` reads environment fallbacks, validates once
and returns a StorageManager over a frozen StorageConfig.

Example:
    storage = (
        StorageBuilder()
        .with_adapter("memory")
        .with_url("https://cdn.example.com")
        .with_path("development")
        .with_max_file_size(5 * 1024 * 1024)
        .add_scope("user", "user/[identifier]")
        .build()
    )
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from stowage.adapters import DEFAULT_ADAPTER_FACTORIES, AdapterFactory, create_adapter
from stowage.adapters.filesystem import FilesystemStorageAdapter, default_base_dir
from stowage.adapters.base import StorageAdapter
from stowage.config import EnvSettings, HttpClientFactory, StorageConfig, default_http_client
from stowage.errors import ErrorCode, Operation, StorageError
from stowage.hooks import HookCallback, HookEvent, HookRegistry
from stowage.keys import is_absolute_url, normalize_key
from stowage.manager import StorageManager
from stowage.mime import ContentTypeTable
from stowage.observability.tracing import configure_tracing, instrument_httpx
from stowage.policies import UploadPolicies
from stowage.scopes import ScopeRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageBuilder:
    """Immutable configuration accumulator for StorageManager.

    Explicit settings win over environment variables. Allowed MIME types and
    extensions can only be set explicitly.
    """

    adapter: StorageAdapter | None = None
    adapter_key: str | None = None
    adapter_options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    adapter_factories: Mapping[str, AdapterFactory] = field(
        default_factory=lambda: DEFAULT_ADAPTER_FACTORIES
    )
    base_url: str | None = None
    base_path: str | None = None
    max_file_size: int | None = None
    allowed_mime_types: frozenset[str] = frozenset()
    allowed_extensions: frozenset[str] = frozenset()
    content_types: ContentTypeTable = field(default_factory=ContentTypeTable)
    scopes: ScopeRegistry = field(default_factory=ScopeRegistry)
    hooks: HookRegistry = field(default_factory=HookRegistry)
    http_client_factory: HttpClientFactory | None = None
    env: Mapping[str, str] | None = None

    def with_adapter(self, adapter: StorageAdapter | str, **options: Any) -> StorageBuilder:
        """Set the adapter instance, or an adapter factory key plus factory options."""
        if isinstance(adapter, StorageAdapter):
            if options:
                raise TypeError("Adapter options are only accepted with a factory key")
            return replace(self, adapter=adapter, adapter_key=None)
        if isinstance(adapter, str):
            return replace(
                self,
                adapter=None,
                adapter_key=adapter,
                adapter_options=MappingProxyType(dict(options)),
            )
        raise TypeError(f"Expected a StorageAdapter or factory key, got {type(adapter).__name__}")

    def with_adapter_factory(self, key: str, factory: AdapterFactory) -> StorageBuilder:
        """Register an adapter factory usable by key (explicitly or via STOWAGE_ADAPTER)."""
        factories = dict(self.adapter_factories)
        factories[key.strip().lower()] = factory
        return replace(self, adapter_factories=MappingProxyType(factories))

    def with_url(self, url: str) -> StorageBuilder:
        return replace(self, base_url=url.strip().rstrip("/"))

    def with_path(self, base_path: str) -> StorageBuilder:
        """Set the global key prefix. Leading and trailing slashes are dropped."""
        return replace(self, base_path=normalize_key(base_path))

    def with_max_file_size(self, max_file_size: int) -> StorageBuilder:
        if max_file_size < 0:
            raise ValueError("max_file_size must be >= 0")
        return replace(self, max_file_size=max_file_size)

    def with_allowed_mime_types(self, mime_types: Iterable[str]) -> StorageBuilder:
        return replace(self, allowed_mime_types=frozenset(mime_types))

    def with_allowed_extensions(self, extensions: Iterable[str]) -> StorageBuilder:
        return replace(self, allowed_extensions=frozenset(extensions))

    def with_content_type(self, content_type: str, *extensions: str) -> StorageBuilder:
        """Register a content type and its extensions (preferred first)."""
        return replace(self, content_types=self.content_types.with_type(content_type, *extensions))

    def with_http_client_factory(self, factory: HttpClientFactory) -> StorageBuilder:
        """Set the httpx.AsyncClient factory used by upload_from_url."""
        return replace(self, http_client_factory=factory)

    def with_env(self, env: Mapping[str, str]) -> StorageBuilder:
        """Read fallbacks from env instead of os.environ."""
        return replace(self, env=MappingProxyType(dict(env)))

    def add_scope(self, name: str, template: str | None = None) -> StorageBuilder:
        """Register a scope template.

        Raises:
            StorageError: INVALID_SCOPE_DEFINITION on duplicates or malformed templates.
        """
        return replace(self, scopes=self.scopes.define(name, template))

    def on(self, event: HookEvent | str, callback: HookCallback) -> StorageBuilder:
        """Register a lifecycle hook. Callbacks run in registration order."""
        return replace(self, hooks=self.hooks.add(event, callback))

    def on_upload_started(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.UPLOAD_STARTED, callback)

    def on_upload_success(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.UPLOAD_SUCCESS, callback)

    def on_delete_started(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.DELETE_STARTED, callback)

    def on_delete_success(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.DELETE_SUCCESS, callback)

    def on_copy_started(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.COPY_STARTED, callback)

    def on_copy_success(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.COPY_SUCCESS, callback)

    def on_move_started(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.MOVE_STARTED, callback)

    def on_move_success(self, callback: HookCallback) -> StorageBuilder:
        return self.on(HookEvent.MOVE_SUCCESS, callback)

    def _resolve_adapter(self, env: EnvSettings) -> StorageAdapter:
        if self.adapter is not None:
            return self.adapter

        key = self.adapter_key or env.adapter
        if not key:
            raise StorageError(
                ErrorCode.ADAPTER_NOT_CONFIGURED,
                Operation.BUILD,
                "No storage adapter configured; call with_adapter() or set STOWAGE_ADAPTER",
            )
        options = dict(self.adapter_options) if self.adapter_key else {}
        factory = self.adapter_factories.get(key.strip().lower())
        if factory is FilesystemStorageAdapter and "base_dir" not in options:
            options["base_dir"] = env.filesystem_base_dir or default_base_dir()
        return create_adapter(key, self.adapter_factories, **options)

    def build(self) -> StorageManager:
        """Validate the configuration and return the storage façade.

        The environment (the with_env() mapping, else os.environ) is read
        here and nowhere else; the returned handles never consult it.

        Raises:
            StorageError: MISSING_URL when no absolute base URL is set or
                found in STOWAGE_URL; ADAPTER_NOT_CONFIGURED when no adapter
                is set or resolvable from STOWAGE_ADAPTER.
        """
        env = EnvSettings.from_mapping(self.env if self.env is not None else os.environ)

        base_url = self.base_url or env.url
        if not base_url:
            raise StorageError(
                ErrorCode.MISSING_URL,
                Operation.BUILD,
                "No base URL configured; call with_url() or set STOWAGE_URL",
            )
        base_url = base_url.rstrip("/")
        if not is_absolute_url(base_url):
            raise StorageError(
                ErrorCode.MISSING_URL,
                Operation.BUILD,
                f"Base URL must be an absolute http(s) URL: {base_url!r}",
                data={"base_url": base_url},
            )

        base_path = normalize_key(
            self.base_path if self.base_path is not None else env.base_path or ""
        )
        max_file_size = self.max_file_size if self.max_file_size is not None else env.max_file_size
        adapter = self._resolve_adapter(env)

        policies = UploadPolicies(
            max_file_size=max_file_size,
            allowed_mime_types=self.allowed_mime_types,
            allowed_extensions=self.allowed_extensions,
        )

        tracing_enabled = configure_tracing(env.tracing)
        if tracing_enabled:
            instrument_httpx()

        config = StorageConfig(
            adapter=adapter,
            base_url=base_url,
            base_path=base_path,
            scopes=self.scopes,
            policies=policies,
            hooks=self.hooks,
            content_types=self.content_types,
            http_client_factory=self.http_client_factory or default_http_client,
            tracing_enabled=tracing_enabled,
        )
        logger.info(
            "Storage built: backend=%s base_path=%r scopes=%d hooks=%d tracing=%s",
            adapter.backend_name,
            base_path,
            len(self.scopes),
            len(self.hooks),
            tracing_enabled,
        )
        return StorageManager(config)
