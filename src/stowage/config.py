"""Stowage runtime configuration.

StorageConfig is the frozen value produced by StorageBuilder.build() and held
by every StorageManager handle. EnvSettings captures the environment fallbacks
read at build time.

Environment Variables:
    STOWAGE_URL: Base URL used to build public URLs
    STOWAGE_BASE_PATH: Global key prefix
    STOWAGE_MAX_FILE_SIZE: Max upload size in bytes
    STOWAGE_ADAPTER: Adapter factory key ("memory", "filesystem", ...)
    STOWAGE_FILESYSTEM_BASE_DIR: Base directory for the filesystem adapter
    STOWAGE_OTEL_ENABLED, STOWAGE_OTEL_SERVICE_NAME, STOWAGE_OTEL_EXPORTER,
    STOWAGE_OTEL_TEST_CAPTURE: Tracing options (see stowage.observability)

The environment is read once, in build(); handles never consult it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import httpx

from stowage.adapters.base import StorageAdapter
from stowage.adapters.filesystem import STOWAGE_FILESYSTEM_BASE_DIR_ENV
from stowage.hooks import HookRegistry
from stowage.mime import ContentTypeTable
from stowage.observability.tracing import DEFAULT_SERVICE_NAME, TracingSettings
from stowage.policies import UploadPolicies
from stowage.scopes import ScopeRegistry

logger = logging.getLogger(__name__)

STOWAGE_URL_ENV = "STOWAGE_URL"
STOWAGE_BASE_PATH_ENV = "STOWAGE_BASE_PATH"
STOWAGE_MAX_FILE_SIZE_ENV = "STOWAGE_MAX_FILE_SIZE"
STOWAGE_ADAPTER_ENV = "STOWAGE_ADAPTER"
STOWAGE_OTEL_ENABLED_ENV = "STOWAGE_OTEL_ENABLED"
STOWAGE_OTEL_SERVICE_NAME_ENV = "STOWAGE_OTEL_SERVICE_NAME"
STOWAGE_OTEL_EXPORTER_ENV = "STOWAGE_OTEL_EXPORTER"
STOWAGE_OTEL_TEST_CAPTURE_ENV = "STOWAGE_OTEL_TEST_CAPTURE"

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0

HttpClientFactory = Callable[[], httpx.AsyncClient]


def default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=DEFAULT_FETCH_TIMEOUT_SECONDS, follow_redirects=True)


def _get_env_str(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _get_env_size(env: Mapping[str, str], key: str) -> int | None:
    raw = _get_env_str(env, key)
    if raw is None:
        return None
    try:
        size = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", key, raw)
        return None
    if size < 0:
        logger.warning("Ignoring %s=%r: must be >= 0", key, raw)
        return None
    return size


def _get_env_bool(env: Mapping[str, str], key: str) -> bool:
    raw = (_get_env_str(env, key) or "").lower()
    return raw in ("1", "true", "yes")


@dataclass(frozen=True, slots=True)
class EnvSettings:
    """Environment fallbacks for the builder.

    Attributes:
        url: Base URL from STOWAGE_URL.
        base_path: Base path from STOWAGE_BASE_PATH.
        max_file_size: Max upload size from STOWAGE_MAX_FILE_SIZE.
        adapter: Adapter factory key from STOWAGE_ADAPTER.
        filesystem_base_dir: Filesystem adapter root from STOWAGE_FILESYSTEM_BASE_DIR.
        tracing: Tracing options from the STOWAGE_OTEL_* variables.
    """

    url: str | None = None
    base_path: str | None = None
    max_file_size: int | None = None
    adapter: str | None = None
    filesystem_base_dir: str | None = None
    tracing: TracingSettings = field(default_factory=TracingSettings)

    @classmethod
    def from_mapping(cls, env: Mapping[str, str]) -> EnvSettings:
        """Read settings from an environment mapping. Invalid sizes are ignored."""
        tracing = TracingSettings(
            enabled=_get_env_bool(env, STOWAGE_OTEL_ENABLED_ENV),
            service_name=_get_env_str(env, STOWAGE_OTEL_SERVICE_NAME_ENV) or DEFAULT_SERVICE_NAME,
            exporter=(_get_env_str(env, STOWAGE_OTEL_EXPORTER_ENV) or "console").lower(),
            test_capture=_get_env_bool(env, STOWAGE_OTEL_TEST_CAPTURE_ENV),
        )
        return cls(
            url=_get_env_str(env, STOWAGE_URL_ENV),
            base_path=_get_env_str(env, STOWAGE_BASE_PATH_ENV),
            max_file_size=_get_env_size(env, STOWAGE_MAX_FILE_SIZE_ENV),
            adapter=_get_env_str(env, STOWAGE_ADAPTER_ENV),
            filesystem_base_dir=_get_env_str(env, STOWAGE_FILESYSTEM_BASE_DIR_ENV),
            tracing=tracing,
        )


@dataclass(frozen=True)
class StorageConfig:
    """Frozen runtime configuration.

    Attributes:
        adapter: Persistence backend.
        base_url: Base URL for public URLs, without trailing slash.
        base_path: Normalized global key prefix, may be empty.
        scopes: Registered scope templates.
        policies: Upload policies.
        hooks: Lifecycle hook callbacks.
        content_types: MIME <-> extension table.
        http_client_factory: Builds the httpx client for URL ingestion.
        tracing_enabled: Whether operations emit spans, fixed at build time.
    """

    adapter: StorageAdapter
    base_url: str
    base_path: str = ""
    scopes: ScopeRegistry = field(default_factory=ScopeRegistry)
    policies: UploadPolicies = field(default_factory=UploadPolicies)
    hooks: HookRegistry = field(default_factory=HookRegistry)
    content_types: ContentTypeTable = field(default_factory=ContentTypeTable)
    http_client_factory: HttpClientFactory = default_http_client
    tracing_enabled: bool = False
