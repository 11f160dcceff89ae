"""
Viewing-key derivation, storage and verification.

A viewing key is a bearer secret that authenticates read access to one
identity's collection. It is derived from the contract's secret seed, the
caller's entropy and the invocation context, returned to the caller once,
and stored only as sha256(key).

Derivation:
    prng_bytes = HMAC-SHA256(prng_seed, frame(height) || frame(time) ||
                             frame(contract) || frame(identity) || frame(entropy))
    key        = "api_key_" + base64(sha256(prng_bytes))

Invariants:
    - Plaintext keys are never persisted or logged
    - verify() always performs exactly one constant-time comparison, against
      a zero buffer when no key is stored, so absence is not observable
    - Storing a key overwrites the previous hash for that identity

How to change safely:
    - Changing the derivation invalidates nothing stored, but changing the
      hash stored per key invalidates every issued key
    - Never add an early return to verify()
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import struct
from dataclasses import dataclass, field

from ..codec import PURPOSE_VIEWING_KEY, Namespace
from ..kv import KVStore
from ..state import ExecutionContext

logger = logging.getLogger(__name__)

VIEWING_KEY_PREFIX = "api_key_"
VIEWING_KEY_SIZE = 32

# Compared against when an identity has no stored key
ZERO_HASH = bytes(VIEWING_KEY_SIZE)


@dataclass(frozen=True)
class ViewingKey:
    """Plaintext viewing key, as handed to its owner.

    Attributes:
        value: The key string
    """

    value: str = field(repr=False)

    def hashed(self) -> bytes:
        return hash_viewing_key(self.value)

    def __str__(self) -> str:
        return self.value


def hash_viewing_key(key: str) -> bytes:
    """One-way form of a key, as stored."""
    return hashlib.sha256(key.encode("utf-8")).digest()


def _frame(data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + data


def derive_viewing_key(
    prng_seed: bytes,
    identity: str,
    entropy: str,
    context: ExecutionContext,
) -> ViewingKey:
    """Derive a viewing key deterministically from its inputs."""
    material = b"".join(
        (
            _frame(struct.pack(">Q", context.block_height)),
            _frame(struct.pack(">Q", context.block_time or 0)),
            _frame(context.contract_address.encode("utf-8")),
            _frame(identity.encode("utf-8")),
            _frame(entropy.encode("utf-8")),
        )
    )
    prng_bytes = hmac.new(prng_seed, material, hashlib.sha256).digest()
    key = hashlib.sha256(prng_bytes).digest()
    return ViewingKey(VIEWING_KEY_PREFIX + base64.b64encode(key).decode("ascii"))


def verify_or_reject_in_constant_time(supplied_hash: bytes, stored_hash: bytes | None) -> bool:
    """Compare a supplied key hash with the stored one.

    When nothing is stored the comparison still runs, against ZERO_HASH,
    and the result is rejected afterwards.
    """
    expected = stored_hash if stored_hash is not None else ZERO_HASH
    matched = hmac.compare_digest(supplied_hash, expected)
    return matched and stored_hash is not None


class CredentialManager:
    """Issues and checks viewing keys.

    Example:
        >>> creds = CredentialManager(kv, prng_seed)
        >>> key = creds.generate("alice", "entropy", ctx)
        >>> creds.store("alice", key)
        >>> creds.verify("alice", str(key))
        True
    """

    def __init__(self, kv: KVStore, prng_seed: bytes) -> None:
        self.kv = kv
        self._prng_seed = prng_seed

    @staticmethod
    def _key(identity: str) -> bytes:
        return Namespace(PURPOSE_VIEWING_KEY, identity).prefix

    def generate(self, identity: str, entropy: str, context: ExecutionContext) -> ViewingKey:
        return derive_viewing_key(self._prng_seed, identity, entropy, context)

    def store(self, identity: str, key: ViewingKey) -> None:
        """Persist the hashed key, replacing any earlier one."""
        self.kv.set(self._key(identity), key.hashed())
        logger.debug("Stored viewing key hash", extra={"identity": identity})

    def has_key(self, identity: str) -> bool:
        return self.kv.get(self._key(identity)) is not None

    def verify(self, identity: str, supplied: str) -> bool:
        """Check a supplied key without revealing whether one exists."""
        stored = self.kv.get(self._key(identity))
        return verify_or_reject_in_constant_time(hash_viewing_key(supplied), stored)
