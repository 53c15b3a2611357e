"""Pytest configuration and fixtures for stowage tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import os
from typing import Any

import pytest

from stowage import StorageBuilder, StorageManager
from stowage.adapters import BasicMemoryStorageAdapter, MemoryStorageAdapter

BASE_URL = "https://cdn.example.com"

_STOWAGE_ENV_VARS = (
    "STOWAGE_URL",
    "STOWAGE_BASE_PATH",
    "STOWAGE_MAX_FILE_SIZE",
    "STOWAGE_ADAPTER",
    "STOWAGE_FILESYSTEM_BASE_DIR",
    "STOWAGE_OTEL_ENABLED",
    "STOWAGE_OTEL_TEST_CAPTURE",
)


@pytest.fixture(autouse=True)
def clean_stowage_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove STOWAGE_* variables so builds only see what a test sets."""
    for name in _STOWAGE_ENV_VARS:
        if name in os.environ:
            monkeypatch.delenv(name)


@pytest.fixture
def memory_adapter() -> MemoryStorageAdapter:
    """Return an empty memory adapter with copy/move support."""
    return MemoryStorageAdapter()


@pytest.fixture
def basic_adapter() -> BasicMemoryStorageAdapter:
    """Return a memory adapter without copy/move capabilities."""
    return BasicMemoryStorageAdapter()


@pytest.fixture
def builder(memory_adapter: MemoryStorageAdapter) -> StorageBuilder:
    """Return a builder wired to the memory adapter and the test base URL."""
    return StorageBuilder().with_adapter(memory_adapter).with_url(BASE_URL).with_env({})


@pytest.fixture
def storage(builder: StorageBuilder) -> StorageManager:
    """Return a storage façade with no base path."""
    return builder.build()


@pytest.fixture
def scoped_storage(builder: StorageBuilder) -> StorageManager:
    """Return a storage façade with a per-user scope registered."""
    return builder.add_scope("user", "user/[identifier]").add_scope("public").build()


class HookRecorder:
    """Collects hook payloads in call order."""

    def __init__(self) -> None:
        self.payloads: list[Any] = []

    def __call__(self, payload: Any) -> None:
        self.payloads.append(payload)

    @property
    def events(self) -> list[str]:
        return [p.event.value for p in self.payloads]


@pytest.fixture
def recorder() -> HookRecorder:
    """Return a hook recorder."""
    return HookRecorder()
