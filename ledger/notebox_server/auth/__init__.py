"""
Viewing-key authentication for Notebox.

Invariants:
    - Only hashed keys are stored
    - Verification cost does not depend on whether a key exists
"""

from .viewing_key import (
    VIEWING_KEY_PREFIX,
    VIEWING_KEY_SIZE,
    ZERO_HASH,
    CredentialManager,
    ViewingKey,
    derive_viewing_key,
    hash_viewing_key,
    verify_or_reject_in_constant_time,
)

__all__ = [
    "CredentialManager",
    "ViewingKey",
    "VIEWING_KEY_PREFIX",
    "VIEWING_KEY_SIZE",
    "ZERO_HASH",
    "derive_viewing_key",
    "hash_viewing_key",
    "verify_or_reject_in_constant_time",
]
