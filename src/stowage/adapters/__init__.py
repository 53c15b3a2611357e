"""Stowage storage adapters.

Backends:
- MemoryStorageAdapter: in-process dict (tests, local dev)
- FilesystemStorageAdapter: local directory tree (dev/test)

Cloud backends implement StorageAdapter outside this package and are plugged
in with ``StorageBuilder.with_adapter`` or ``with_adapter_factory``.

Environment Variables:
    STOWAGE_ADAPTER: Adapter key resolved through the factory table
        ("memory", "filesystem", or a registered key)
    STOWAGE_FILESYSTEM_BASE_DIR: Base directory for the filesystem backend
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from stowage.adapters.base import (
    PutOptions,
    StorageAdapter,
    SupportsCopy,
    SupportsMove,
    supports_copy,
    supports_move,
)
from stowage.adapters.errors import (
    AdapterError,
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from stowage.adapters.filesystem import FilesystemStorageAdapter
from stowage.adapters.memory import BasicMemoryStorageAdapter, MemoryStorageAdapter
from stowage.errors import ErrorCode, Operation, StorageError

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., StorageAdapter]

DEFAULT_ADAPTER_FACTORIES: Mapping[str, AdapterFactory] = MappingProxyType(
    {
        "memory": MemoryStorageAdapter,
        "filesystem": FilesystemStorageAdapter,
    }
)


def create_adapter(
    key: str,
    factories: Mapping[str, AdapterFactory] = DEFAULT_ADAPTER_FACTORIES,
    **options: Any,
) -> StorageAdapter:
    """Instantiate an adapter by key. Fail-closed on unknown keys.

    Args:
        key: Factory key, case-insensitive.
        factories: Key -> factory table.
        **options: Keyword arguments forwarded to the factory.

    Raises:
        StorageError: ADAPTER_NOT_CONFIGURED if no factory is registered for key.
    """
    normalized = key.strip().lower()
    factory = factories.get(normalized)
    if factory is None:
        raise StorageError(
            ErrorCode.ADAPTER_NOT_CONFIGURED,
            Operation.BUILD,
            f"No adapter factory registered for {key!r}",
            data={"adapter": key, "known": sorted(factories)},
        )
    adapter = factory(**options)
    logger.debug("Created %s adapter from factory %r", adapter.backend_name, normalized)
    return adapter


__all__ = [
    "AdapterError",
    "AdapterFactory",
    "BasicMemoryStorageAdapter",
    "DEFAULT_ADAPTER_FACTORIES",
    "FilesystemStorageAdapter",
    "MemoryStorageAdapter",
    "ObjectNotFoundError",
    "PathTraversalError",
    "PutOptions",
    "StorageAdapter",
    "StorageBackendError",
    "SupportsCopy",
    "SupportsMove",
    "create_adapter",
    "supports_copy",
    "supports_move",
]
