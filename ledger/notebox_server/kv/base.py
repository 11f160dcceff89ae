"""
Base protocol and types for the key-value byte store.

The core only needs an ordered byte store with get/set/delete. It has no
transactions of its own, so every backend also provides an atomic()
boundary: all writes made inside it are committed together, or none are.

Invariants:
    - get() returns None for a missing key, never raises for absence
    - Writes inside atomic() are visible to reads inside the same block
    - An exception leaving atomic() discards every write made inside it
    - Nested atomic() blocks join the outermost one

How to change safely:
    - Protocol changes require updating all implementations
    - Test rollback behaviour for every new backend
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from ..errors import NoteboxError

if TYPE_CHECKING:
    from ..config import ServerConfig


class KVStoreError(NoteboxError):
    """Base exception for key-value backend failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="KV_ERROR")


class KVStoreClosedError(KVStoreError):
    """Operation attempted on a closed store."""

    def __init__(self) -> None:
        super().__init__("Key-value store is closed")


@runtime_checkable
class KVStore(Protocol):
    """Protocol for key-value byte-store backends.

    Example:
        >>> kv = InMemoryKVStore()
        >>> with kv.atomic():
        ...     kv.set(b"a", b"1")
        ...     kv.set(b"b", b"2")
        >>> kv.get(b"a")
        b'1'
    """

    @abstractmethod
    def get(self, key: bytes) -> Optional[bytes]:
        """Read a value.

        Returns:
            Stored bytes, or None if the key does not exist
        """
        ...

    @abstractmethod
    def set(self, key: bytes, value: bytes) -> None:
        """Write a value, replacing any previous one."""
        ...

    @abstractmethod
    def delete(self, key: bytes) -> None:
        """Remove a key. Removing a missing key is a no-op."""
        ...

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """All-or-nothing write boundary.

        Raises:
            Whatever the block raised, after discarding its writes
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release resources."""
        ...


def create_kv_store(config: "ServerConfig") -> KVStore:
    """Factory function to create a key-value store from configuration.

    Args:
        config: Server configuration

    Returns:
        Appropriate KVStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import KVBackend
    from .memory import InMemoryKVStore
    from .sqlite import SqliteKVStore

    if config.storage.backend == KVBackend.MEMORY:
        return InMemoryKVStore()
    elif config.storage.backend == KVBackend.SQLITE:
        return SqliteKVStore(
            db_path=config.storage.db_path,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported KV backend: {config.storage.backend}")
