"""Stowage: storage key resolution and upload policy engine.

Sits between application code and a pluggable persistence backend. Owns key
derivation from paths or public URLs, scoped namespaces, content-type
inference, upload policies, replace strategies, capability-gated copy/move
and lifecycle hooks.

Environment Variables:
    STOWAGE_URL: Base URL fallback
    STOWAGE_BASE_PATH: Base path fallback
    STOWAGE_MAX_FILE_SIZE: Max upload size in bytes
    STOWAGE_ADAPTER: Adapter factory key ("memory", "filesystem", ...)
    STOWAGE_FILESYSTEM_BASE_DIR: Base directory for the filesystem adapter
    STOWAGE_OTEL_ENABLED: Set to "1" to emit OpenTelemetry spans
"""

from stowage.adapters import (
    FilesystemStorageAdapter,
    MemoryStorageAdapter,
    PutOptions,
    StorageAdapter,
    SupportsCopy,
    SupportsMove,
)
from stowage.builder import StorageBuilder
from stowage.config import StorageConfig
from stowage.errors import ErrorCode, Operation, StorageError
from stowage.hooks import HookEvent, HookPayload, UploadSource
from stowage.manager import PathContext, StorageManager
from stowage.models import FileDescriptor, ReplaceStrategy, UploadOptions
from stowage.policies import UploadPolicies

__all__ = [
    "ErrorCode",
    "FileDescriptor",
    "FilesystemStorageAdapter",
    "HookEvent",
    "HookPayload",
    "MemoryStorageAdapter",
    "Operation",
    "PathContext",
    "PutOptions",
    "ReplaceStrategy",
    "StorageAdapter",
    "StorageBuilder",
    "StorageConfig",
    "StorageError",
    "StorageManager",
    "SupportsCopy",
    "SupportsMove",
    "UploadOptions",
    "UploadPolicies",
    "UploadSource",
]
