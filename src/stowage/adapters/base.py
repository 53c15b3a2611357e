"""Storage adapter interface definition.

Provides the StorageAdapter contract that all persistence backends must
implement, plus the optional copy/move capabilities.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from stowage.models import DEFAULT_CACHE_CONTROL
from stowage.payload import AdapterBody


@dataclass(frozen=True, slots=True)
class PutOptions:
    """Object metadata passed to ``put``.

    Attributes:
        content_type: Resolved MIME type.
        cache_control: Cache-Control header value for the stored object.
        public: Whether the object should be publicly readable.
    """

    content_type: str
    cache_control: str = DEFAULT_CACHE_CONTROL
    public: bool = True


class StorageAdapter(ABC):
    """Abstract base class for storage backends.

    Keys passed to adapters are already normalized by the engine. Adapters
    never see base URLs, scopes or policies.

    Implementations:
    - MemoryStorageAdapter: in-process dict (tests, local dev)
    - FilesystemStorageAdapter: local directory tree
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability.

        Returns:
            Backend name string (e.g., "memory", "filesystem").
        """
        ...

    @abstractmethod
    async def put(self, key: str, body: AdapterBody, options: PutOptions) -> None:
        """Store an object, replacing any existing object at key.

        Args:
            key: Normalized object key.
            body: Object content, either bytes or a lazy chunk iterator.
                A lazy body may raise mid-iteration; the adapter must not
                leave a partial object behind in that case.
            options: Content type and visibility metadata.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object. Deleting an absent key is a no-op."""
        ...

    @abstractmethod
    async def list(self, prefix: str | None = None) -> list[str]:
        """List keys starting with prefix, or every key when prefix is None.

        Returns:
            Keys in ascending order.
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if an object is stored at key."""
        ...

    @abstractmethod
    def stream(self, key: str) -> AsyncIterator[bytes]:
        """Return a lazy, finite byte sequence for key.

        The sequence is empty when the key is absent.
        """
        ...


@runtime_checkable
class SupportsCopy(Protocol):
    """Adapter capability: server-side copy."""

    async def copy(self, from_key: str, to_key: str) -> None: ...


@runtime_checkable
class SupportsMove(Protocol):
    """Adapter capability: server-side move."""

    async def move(self, from_key: str, to_key: str) -> None: ...


def supports_copy(adapter: StorageAdapter) -> bool:
    return isinstance(adapter, SupportsCopy)


def supports_move(adapter: StorageAdapter) -> bool:
    return isinstance(adapter, SupportsMove)
