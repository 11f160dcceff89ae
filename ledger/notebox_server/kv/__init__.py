"""
Key-value byte-store abstraction for Notebox.

This module provides a pluggable storage backend interface supporting:
- SQLite (single file, for deployments)
- In-memory (for testing)

Everything the server persists, including contract state, goes through
this interface.

Invariants:
    - Backends expose only get/set/delete plus an atomic() boundary
    - Failed operations inside atomic() must not leave partial writes

How to change safely:
    - New backends must implement the KVStore protocol
    - Verify rollback guarantees before using a backend in production
"""

from .base import KVStore, KVStoreClosedError, KVStoreError, create_kv_store
from .memory import InMemoryKVStore
from .sqlite import SqliteKVStore

__all__ = [
    # Protocol and errors
    "KVStore",
    "KVStoreError",
    "KVStoreClosedError",
    # Factory
    "create_kv_store",
    # Implementations
    "InMemoryKVStore",
    "SqliteKVStore",
]
