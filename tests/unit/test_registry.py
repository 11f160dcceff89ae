"""
Unit tests for collection lifecycle.

Tests cover:
- Structural existence probing (absent, corrupt, present)
- Sentinel creation and the AlreadyExists guard
- Owner recovery from header and from a bare sentinel
"""

import pytest

from ledger.notebox_server.codec import (
    CollectionHeader,
    Record,
    encode_header,
    encode_length,
    encode_record,
)
from ledger.notebox_server.errors import AlreadyExistsError, NotACollectionError
from ledger.notebox_server.kv import InMemoryKVStore
from ledger.notebox_server.store import (
    SENTINEL_REFERENCE,
    CollectionRegistry,
    KeyedStore,
    ProbeState,
    collection_namespace,
)


class TestCollectionRegistry:
    """Tests for CollectionRegistry."""

    @pytest.fixture
    def kv(self):
        return InMemoryKVStore()

    @pytest.fixture
    def store(self, kv):
        return KeyedStore(kv)

    @pytest.fixture
    def registry(self, store):
        return CollectionRegistry(store)

    def test_absent_by_default(self, registry):
        assert not registry.exists("alice")
        assert registry.probe("alice").state is ProbeState.ABSENT

    def test_create_with_sentinel(self, registry, store):
        """Creation writes exactly one sentinel owned by the identity."""
        registry.create_with_sentinel("alice")

        ns = collection_namespace("alice")
        assert registry.exists("alice")
        assert store.length(ns) == 1
        sentinel = store.get(ns, 0)
        assert sentinel.sender == "alice"
        assert sentinel.reference == SENTINEL_REFERENCE

    def test_create_twice_fails(self, registry, store):
        registry.create_with_sentinel("alice")
        with pytest.raises(AlreadyExistsError):
            registry.create_with_sentinel("alice")
        assert store.length(collection_namespace("alice")) == 1

    def test_owner_of(self, registry):
        registry.create_with_sentinel("alice")
        assert registry.owner_of("alice") == "alice"

    def test_owner_of_absent(self, registry):
        with pytest.raises(NotACollectionError):
            registry.owner_of("alice")

    def test_exists_is_per_identity(self, registry):
        registry.create_with_sentinel("alice")
        assert not registry.exists("bob")

    def test_sentinel_only_collection_is_present(self, kv, registry):
        """A collection without a header is recognised by its sentinel."""
        ns = collection_namespace("alice")
        kv.set(ns.index_key(0), encode_record(Record(SENTINEL_REFERENCE, "alice")))
        kv.set(ns.length_key, encode_length(1))

        probe = registry.probe("alice")
        assert probe.state is ProbeState.PRESENT
        assert probe.source == "sentinel"
        assert registry.owner_of("alice") == "alice"

    def test_undecodable_index_zero_is_not_a_collection(self, kv, registry):
        """Decode failures make exists() false instead of raising."""
        ns = collection_namespace("alice")
        kv.set(ns.index_key(0), b"\x00not-a-record")
        kv.set(ns.length_key, encode_length(1))

        assert registry.probe("alice").state is ProbeState.CORRUPT
        assert not registry.exists("alice")
        with pytest.raises(NotACollectionError):
            registry.owner_of("alice")

    def test_undecodable_header_is_not_a_collection(self, kv, registry):
        kv.set(collection_namespace("alice").header_key, b"{broken")
        assert registry.probe("alice").state is ProbeState.CORRUPT
        assert not registry.exists("alice")

    def test_corrupt_length_is_not_a_collection(self, kv, registry):
        kv.set(collection_namespace("alice").length_key, b"\x01")
        assert not registry.exists("alice")

    def test_cannot_create_over_corrupt_data(self, kv, registry):
        kv.set(collection_namespace("alice").header_key, b"{broken")
        with pytest.raises(NotACollectionError):
            registry.create_with_sentinel("alice")

    def test_header_sentinel_mismatch(self, kv, registry):
        """Header and sentinel must agree on the owner."""
        registry.create_with_sentinel("alice")
        kv.set(
            collection_namespace("alice").header_key,
            encode_header(CollectionHeader(owner="mallory")),
        )
        with pytest.raises(NotACollectionError):
            registry.owner_of("alice")

    def test_emptied_collection_can_be_recreated(self, registry, store):
        """A namespace truncated to zero no longer holds a collection."""
        registry.create_with_sentinel("alice")
        ns = collection_namespace("alice")
        store.kv.delete(ns.header_key)
        store.truncate_to(ns, 0)

        assert not registry.exists("alice")
        registry.create_with_sentinel("alice")
        assert store.length(ns) == 1
