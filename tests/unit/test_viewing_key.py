"""
Unit tests for viewing keys.

Tests cover:
- Deterministic derivation and sensitivity to every input
- Hashed-only storage
- Constant-time verification, including the zero-buffer branch
"""

import hashlib

import pytest

from ledger.notebox_server.auth import viewing_key
from ledger.notebox_server.auth import (
    VIEWING_KEY_PREFIX,
    ZERO_HASH,
    CredentialManager,
    derive_viewing_key,
    hash_viewing_key,
    verify_or_reject_in_constant_time,
)
from ledger.notebox_server.kv import InMemoryKVStore
from ledger.notebox_server.state import ExecutionContext, derive_prng_seed

SEED = derive_prng_seed("lets init")


def ctx(sender="alice", height=12345, time=1571797419, contract="notebox"):
    return ExecutionContext(
        sender=sender,
        block_height=height,
        block_time=time,
        contract_address=contract,
    )


class TestDerivation:
    """Tests for viewing-key derivation."""

    def test_key_format(self):
        key = derive_viewing_key(SEED, "alice", "entropy", ctx())
        assert str(key).startswith(VIEWING_KEY_PREFIX)
        # base64 of 32 bytes
        assert len(str(key)) == len(VIEWING_KEY_PREFIX) + 44

    def test_deterministic(self):
        a = derive_viewing_key(SEED, "alice", "entropy", ctx())
        b = derive_viewing_key(SEED, "alice", "entropy", ctx())
        assert a == b

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"seed": derive_prng_seed("other seed")},
            {"identity": "bob"},
            {"entropy": "other"},
            {"context": ctx(height=12346)},
            {"context": ctx(time=1571797420)},
            {"context": ctx(contract="other")},
        ],
    )
    def test_every_input_matters(self, kwargs):
        base = {"seed": SEED, "identity": "alice", "entropy": "entropy", "context": ctx()}
        changed = {**base, **kwargs}
        a = derive_viewing_key(base["seed"], base["identity"], base["entropy"], base["context"])
        b = derive_viewing_key(
            changed["seed"], changed["identity"], changed["entropy"], changed["context"]
        )
        assert a != b

    def test_repr_hides_key(self):
        key = derive_viewing_key(SEED, "alice", "entropy", ctx())
        assert str(key) not in repr(key)


class TestCredentialManager:
    """Tests for CredentialManager."""

    @pytest.fixture
    def kv(self):
        return InMemoryKVStore()

    @pytest.fixture
    def creds(self, kv):
        return CredentialManager(kv, SEED)

    def test_store_and_verify(self, creds):
        key = creds.generate("alice", "entropy", ctx())
        creds.store("alice", key)
        assert creds.verify("alice", str(key))

    def test_wrong_key_rejected(self, creds):
        creds.store("alice", creds.generate("alice", "entropy", ctx()))
        assert not creds.verify("alice", "wrong")

    def test_no_key_rejected(self, creds):
        assert not creds.verify("alice", "anything")
        assert not creds.has_key("alice")

    def test_key_bound_to_identity(self, creds):
        key = creds.generate("alice", "entropy", ctx())
        creds.store("alice", key)
        assert not creds.verify("bob", str(key))

    def test_only_hash_is_stored(self, kv, creds):
        key = creds.generate("alice", "entropy", ctx())
        creds.store("alice", key)

        values = [v for _, v in kv.items()]
        assert values == [hashlib.sha256(str(key).encode()).digest()]
        assert all(str(key).encode() not in v for v in values)

    def test_rotation_replaces_previous_key(self, creds):
        old = creds.generate("alice", "one", ctx())
        creds.store("alice", old)
        new = creds.generate("alice", "two", ctx())
        creds.store("alice", new)

        assert creds.verify("alice", str(new))
        assert not creds.verify("alice", str(old))


class TestConstantTimeVerification:
    """The comparison runs whether or not a key is stored."""

    @pytest.fixture
    def comparisons(self, monkeypatch):
        calls = []
        real = viewing_key.hmac.compare_digest

        def spy(a, b):
            calls.append((a, b))
            return real(a, b)

        monkeypatch.setattr(viewing_key.hmac, "compare_digest", spy)
        return calls

    def test_absent_key_compares_against_zero_buffer(self, comparisons):
        creds = CredentialManager(InMemoryKVStore(), SEED)

        assert not creds.verify("alice", "guess")

        assert len(comparisons) == 1
        supplied, expected = comparisons[0]
        assert supplied == hash_viewing_key("guess")
        assert expected == ZERO_HASH
        assert len(expected) == len(supplied)

    def test_wrong_key_compares_against_stored_hash(self, comparisons):
        creds = CredentialManager(InMemoryKVStore(), SEED)
        key = creds.generate("alice", "entropy", ctx())
        creds.store("alice", key)

        assert not creds.verify("alice", "guess")

        assert len(comparisons) == 1
        assert comparisons[0][1] == key.hashed()

    def test_helper_rejects_zero_match_without_stored_hash(self):
        """Even a supplied hash of all zeros is rejected when nothing is stored."""
        assert not verify_or_reject_in_constant_time(ZERO_HASH, None)

    def test_helper_accepts_matching_hash(self):
        stored = hash_viewing_key("k")
        assert verify_or_reject_in_constant_time(hash_viewing_key("k"), stored)
