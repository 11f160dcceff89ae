"""
Unit tests for key-value store backends.

Tests cover:
- get/set/delete semantics
- atomic() commit and rollback
- Nested atomic() blocks
- Backend factory
"""

import sqlite3
import tempfile

import pytest

from ledger.notebox_server.config import KVBackend, ServerConfig, StorageConfig
from ledger.notebox_server.kv import (
    InMemoryKVStore,
    KVStore,
    KVStoreClosedError,
    SqliteKVStore,
    create_kv_store,
)


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(params=["memory", "sqlite"])
def kv(request, data_dir):
    """Each backend in turn."""
    if request.param == "memory":
        store = InMemoryKVStore()
    else:
        store = SqliteKVStore(f"{data_dir}/kv.db")
    yield store
    store.close()


class TestKVStoreContract:
    """Behaviour shared by all backends."""

    def test_implements_protocol(self, kv):
        assert isinstance(kv, KVStore)

    def test_missing_key_is_none(self, kv):
        assert kv.get(b"missing") is None

    def test_set_then_get(self, kv):
        kv.set(b"k", b"v")
        assert kv.get(b"k") == b"v"

    def test_set_overwrites(self, kv):
        kv.set(b"k", b"v1")
        kv.set(b"k", b"v2")
        assert kv.get(b"k") == b"v2"

    def test_delete(self, kv):
        kv.set(b"k", b"v")
        kv.delete(b"k")
        assert kv.get(b"k") is None

    def test_delete_missing_is_noop(self, kv):
        kv.delete(b"missing")
        assert kv.get(b"missing") is None

    def test_binary_keys_and_values(self, kv):
        """Keys and values may hold any bytes."""
        kv.set(b"\x00\xff\x00", b"\x00\x01")
        assert kv.get(b"\x00\xff\x00") == b"\x00\x01"

    def test_atomic_commits(self, kv):
        with kv.atomic():
            kv.set(b"a", b"1")
            kv.set(b"b", b"2")
        assert kv.get(b"a") == b"1"
        assert kv.get(b"b") == b"2"

    def test_atomic_reads_own_writes(self, kv):
        with kv.atomic():
            kv.set(b"a", b"1")
            assert kv.get(b"a") == b"1"
            kv.delete(b"a")
            assert kv.get(b"a") is None

    def test_atomic_rolls_back_on_error(self, kv):
        kv.set(b"keep", b"old")
        with pytest.raises(RuntimeError):
            with kv.atomic():
                kv.set(b"keep", b"new")
                kv.set(b"extra", b"x")
                kv.delete(b"keep")
                raise RuntimeError("boom")
        assert kv.get(b"keep") == b"old"
        assert kv.get(b"extra") is None

    def test_nested_atomic_joins_outer(self, kv):
        """Failure in the outer block discards inner writes too."""
        with pytest.raises(RuntimeError):
            with kv.atomic():
                with kv.atomic():
                    kv.set(b"inner", b"1")
                raise RuntimeError("boom")
        assert kv.get(b"inner") is None

    def test_usable_after_rollback(self, kv):
        with pytest.raises(RuntimeError):
            with kv.atomic():
                raise RuntimeError("boom")
        with kv.atomic():
            kv.set(b"a", b"1")
        assert kv.get(b"a") == b"1"


class TestInMemoryKVStore:
    """Testing helpers of the in-memory backend."""

    def test_closed_store_rejects_operations(self):
        kv = InMemoryKVStore()
        kv.close()
        with pytest.raises(KVStoreClosedError):
            kv.get(b"k")

    def test_inject_failure_after_writes(self):
        """Injected failure fires on the requested write only."""
        kv = InMemoryKVStore()
        kv.inject_failure(OSError("disk full"), after_writes=1)
        kv.set(b"a", b"1")
        with pytest.raises(OSError):
            kv.set(b"b", b"2")
        kv.set(b"c", b"3")
        assert kv.get(b"b") is None
        assert kv.get(b"c") == b"3"

    def test_items_filters_by_prefix(self):
        kv = InMemoryKVStore()
        kv.set(b"p:1", b"a")
        kv.set(b"q:1", b"b")
        assert kv.items(b"p:") == [(b"p:1", b"a")]


class CommitFailingConnection:
    """Connection wrapper whose first COMMIT raises."""

    def __init__(self, conn):
        self._conn = conn
        self.fail_next_commit = True

    def execute(self, sql, *args):
        if sql == "COMMIT" and self.fail_next_commit:
            self.fail_next_commit = False
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, *args)

    def __getattr__(self, name):
        return getattr(self._conn, name)


class TestSqliteKVStore:
    """SQLite-specific behaviour."""

    def test_failed_commit_rolls_back(self, data_dir):
        """A COMMIT failure discards the writes and frees the connection."""
        kv = SqliteKVStore(f"{data_dir}/kv.db")
        kv.get(b"open")
        kv._conn = CommitFailingConnection(kv._conn)

        with pytest.raises(sqlite3.OperationalError):
            with kv.atomic():
                kv.set(b"a", b"1")

        assert not kv._conn.in_transaction
        assert kv.get(b"a") is None

        with kv.atomic():
            kv.set(b"b", b"2")
        assert kv.get(b"b") == b"2"
        assert kv.get(b"a") is None
        kv.close()

    def test_data_survives_reopen(self, data_dir):
        path = f"{data_dir}/kv.db"
        kv = SqliteKVStore(path)
        with kv.atomic():
            kv.set(b"k", b"v")
        kv.close()

        reopened = SqliteKVStore(path)
        assert reopened.get(b"k") == b"v"
        reopened.close()

    def test_creates_missing_directory(self, data_dir):
        kv = SqliteKVStore(f"{data_dir}/nested/dir/kv.db")
        kv.set(b"k", b"v")
        assert kv.get(b"k") == b"v"
        kv.close()


class TestCreateKVStore:
    """Tests for the backend factory."""

    def test_memory_backend(self):
        config = ServerConfig(storage=StorageConfig(backend=KVBackend.MEMORY))
        assert isinstance(create_kv_store(config), InMemoryKVStore)

    def test_sqlite_backend(self, data_dir):
        config = ServerConfig(storage=StorageConfig(backend=KVBackend.SQLITE, data_dir=data_dir))
        kv = create_kv_store(config)
        assert isinstance(kv, SqliteKVStore)
        assert str(kv.db_path).startswith(data_dir)
        kv.close()
