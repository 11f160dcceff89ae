"""
Error types for Notebox.

This module defines all exception types raised by the server core:
- NoteboxError: Base exception
- AlreadyInitializedError: Identity initialized twice
- UnauthorizedError: Viewing key rejected
- AlreadyExistsError: Collection already created
- NotACollectionError: Namespace does not hold a collection
- OutOfRangeError: Index past the end of a sequence
- CorruptRecordError: Stored bytes could not be decoded
- StateNotFoundError: Contract state missing (mis-deployed instance)
- ValidationError: Bad input at the boundary

Invariants:
    - All errors inherit from NoteboxError
    - Errors carry a stable code for programmatic handling
    - UnauthorizedError never says whether a key exists
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class NoteboxError(Exception):
    """Base exception for all Notebox errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "NOTEBOX_ERROR"
        self.details = details or {}


class AlreadyInitializedError(NoteboxError):
    """Identity already has a collection.

    Raised by initialize when the caller's collection exists, either from
    an earlier initialize or from a deposit that auto-provisioned it.
    Not retryable.
    """

    def __init__(self, identity: str) -> None:
        super().__init__(
            f"Identity has already been initialized: {identity}",
            code="ALREADY_INITIALIZED",
            details={"identity": identity},
        )
        self.identity = identity


class UnauthorizedError(NoteboxError):
    """Viewing key rejected.

    The message is identical for a wrong key and for an identity that
    never had one.
    """

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, code="UNAUTHORIZED")


class AlreadyExistsError(NoteboxError):
    """Collection already exists for this identity."""

    def __init__(self, identity: str) -> None:
        super().__init__(
            f"Collection already exists: {identity}",
            code="ALREADY_EXISTS",
            details={"identity": identity},
        )
        self.identity = identity


class NotACollectionError(NoteboxError):
    """Namespace is absent or does not hold a collection.

    Raised when:
    - The namespace was never written
    - The header or sentinel cannot be decoded
    - Header and sentinel disagree about the owner
    """

    def __init__(self, identity: str, reason: Optional[str] = None) -> None:
        msg = f"Not a collection: {identity}"
        if reason:
            msg += f" ({reason})"
        super().__init__(
            msg,
            code="NOT_A_COLLECTION",
            details={"identity": identity, "reason": reason},
        )
        self.identity = identity
        self.reason = reason


class OutOfRangeError(NoteboxError):
    """Index is not below the sequence length."""

    def __init__(self, index: int, length: int) -> None:
        super().__init__(
            f"Index {index} out of range for length {length}",
            code="OUT_OF_RANGE",
            details={"index": index, "length": length},
        )
        self.index = index
        self.length = length


class CorruptRecordError(NoteboxError):
    """Stored bytes could not be decoded into the expected value."""

    def __init__(self, message: str, key: Optional[bytes] = None) -> None:
        super().__init__(
            message,
            code="CORRUPT_RECORD",
            details={"key": key.hex() if key is not None else None},
        )
        self.key = key


class StateNotFoundError(NoteboxError):
    """Contract state is missing.

    Fatal: the store was never instantiated, or points at the wrong data.
    """

    def __init__(self, message: str = "Contract state not found") -> None:
        super().__init__(message, code="NOT_FOUND", details={"resource_type": "config"})


class ValidationError(NoteboxError):
    """Input validation failed.

    Raised when:
    - Identity is empty
    - Reference is empty or too long
    - Pagination arguments are invalid
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []
