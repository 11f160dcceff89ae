"""
Notification service - the operations exposed to callers.

Each public coroutine is one invocation: it runs to completion under the
service lock, and every write it makes happens inside one KVStore.atomic()
block, so a failure leaves no partial writes behind.

Operations:
    - initialize: create the caller's collection and issue a viewing key
    - rotate_credential: issue a new viewing key (always allowed)
    - deposit: append a record to any recipient, creating their collection
    - list_records / get_record / collection_length: authenticated reads
    - purge: drop all of the caller's records, keeping the sentinel

Invariants:
    - Exactly one sentinel per collection, created by whichever of
      initialize or deposit touches the identity first
    - Reads verify the viewing key before touching the collection
    - Listing never returns the sentinel

How to change safely:
    - New write operations must run inside _invocation()
    - Keep UnauthorizedError messages identical for all key failures
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from .auth import CredentialManager, ViewingKey
from .codec import Record
from .config import ServiceConfig
from .errors import AlreadyInitializedError, OutOfRangeError, UnauthorizedError, ValidationError
from .kv import KVStore
from .state import (
    ContractState,
    ExecutionContext,
    canonical_identity,
    derive_prng_seed,
    load_state,
    save_state,
)
from .store import CollectionRegistry, KeyedStore, collection_namespace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepositReceipt:
    """Result of a deposit.

    Attributes:
        recipient: Canonical recipient identity
        position: Position of the new record among real records (0-based)
        created_collection: Whether this deposit provisioned the collection
    """

    recipient: str
    position: int
    created_collection: bool


@dataclass
class RecordPage:
    """Records returned by a listing.

    Attributes:
        records: Records, oldest first for full listings and newest first
            for paged listings
        total: Number of real records in the collection
        page: Requested page, if paged
        page_size: Requested page size, if paged
    """

    records: list[Record] = field(default_factory=list)
    total: int = 0
    page: int | None = None
    page_size: int | None = None


class NotificationService:
    """Per-recipient notification ledger.

    Example:
        >>> kv = InMemoryKVStore()
        >>> service = NotificationService.instantiate(kv, ExecutionContext("creator"), "seed")
        >>> key = await service.initialize(ExecutionContext("alice"), "entropy")
        >>> await service.deposit(ExecutionContext("bob"), "alice", "notes/report.pdf")
        >>> page = await service.list_records("alice", str(key))
        >>> [r.reference for r in page.records]
        ['notes/report.pdf']
    """

    def __init__(
        self,
        kv: KVStore,
        state: ContractState,
        config: ServiceConfig | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            kv: Key-value store holding all data
            state: Contract state loaded from (or saved to) kv
            config: Service limits
        """
        self.kv = kv
        self.state = state
        self.config = config or ServiceConfig()
        self.store = KeyedStore(kv)
        self.registry = CollectionRegistry(self.store)
        self.credentials = CredentialManager(kv, state.prng_seed)
        self._lock = asyncio.Lock()

    @classmethod
    def instantiate(
        cls,
        kv: KVStore,
        context: ExecutionContext,
        prng_seed: str,
        config: ServiceConfig | None = None,
    ) -> NotificationService:
        """Deploy a new instance onto an empty store.

        Raises:
            ValidationError: If the store already holds contract state
        """
        state = ContractState(
            deployer=canonical_identity(context.sender, "sender"),
            contract=context.contract_address,
            prng_seed=derive_prng_seed(prng_seed),
        )
        with kv.atomic():
            save_state(kv, state)
        logger.info("Contract was initialized", extra={"deployer": state.deployer})
        return cls(kv, state, config)

    @classmethod
    def attach(cls, kv: KVStore, config: ServiceConfig | None = None) -> NotificationService:
        """Open an already deployed instance.

        Raises:
            StateNotFoundError: If the store was never instantiated
        """
        return cls(kv, load_state(kv), config)

    @asynccontextmanager
    async def _invocation(self) -> AsyncIterator[None]:
        async with self._lock:
            with self.kv.atomic():
                yield

    def _validate_reference(self, reference: str) -> str:
        if not isinstance(reference, str) or not reference:
            raise ValidationError("reference must be a non-empty string", field_name="reference")
        if len(reference) > self.config.max_reference_length:
            raise ValidationError(
                f"reference exceeds {self.config.max_reference_length} characters",
                field_name="reference",
            )
        return reference

    async def initialize(self, context: ExecutionContext, entropy: str) -> ViewingKey:
        """Create the caller's collection and issue its first viewing key.

        Raises:
            AlreadyInitializedError: If the caller's collection exists
        """
        identity = canonical_identity(context.sender, "sender")
        async with self._invocation():
            if self.registry.exists(identity):
                raise AlreadyInitializedError(identity)
            self.registry.create_with_sentinel(identity, ts=context.block_time_ms)
            key = self.credentials.generate(identity, entropy, context)
            self.credentials.store(identity, key)

        logger.info("Initialized identity", extra={"identity": identity})
        return key

    async def rotate_credential(self, context: ExecutionContext, entropy: str) -> ViewingKey:
        """Issue a new viewing key for the caller, replacing any previous one."""
        identity = canonical_identity(context.sender, "sender")
        async with self._invocation():
            replaced = self.credentials.has_key(identity)
            key = self.credentials.generate(identity, entropy, context)
            self.credentials.store(identity, key)

        logger.info("Rotated viewing key", extra={"identity": identity, "replaced": replaced})
        return key

    async def deposit(
        self,
        context: ExecutionContext,
        recipient: str,
        reference: str,
    ) -> DepositReceipt:
        """Append a record to the recipient's collection.

        A recipient that has never been seen gets its collection (sentinel
        included) created in the same invocation.
        """
        sender = canonical_identity(context.sender, "sender")
        recipient = canonical_identity(recipient, "recipient")
        reference = self._validate_reference(reference)

        async with self._invocation():
            created = False
            if not self.registry.exists(recipient):
                self.registry.create_with_sentinel(recipient, ts=context.block_time_ms)
                created = True
            index = self.store.append(
                collection_namespace(recipient),
                Record(reference=reference, sender=sender, ts=context.block_time_ms),
            )

        logger.info(
            "Deposited record",
            extra={
                "sender": sender,
                "recipient": recipient,
                "position": index - 1,
                "created_collection": created,
            },
        )
        return DepositReceipt(recipient=recipient, position=index - 1, created_collection=created)

    def _authenticate(self, target: str, key: str) -> None:
        """Verify the key and the collection owner.

        Raises:
            UnauthorizedError: If the key is wrong or missing, or the
                collection belongs to someone else
            NotACollectionError: If target has no collection
        """
        if not self.credentials.verify(target, key):
            raise UnauthorizedError()

        owner = self.registry.owner_of(target)
        if owner != target:
            logger.warning(
                "Collection owner mismatch",
                extra={"identity": target, "owner": owner},
            )
            raise UnauthorizedError("Can only query your own records")

    def _total(self, target: str) -> int:
        return max(self.store.length(collection_namespace(target)) - 1, 0)

    async def list_records(
        self,
        target: str,
        key: str,
        page: int | None = None,
        page_size: int | None = None,
    ) -> RecordPage:
        """List the records deposited for target.

        Without page arguments every record is returned oldest first. With
        them, records are returned newest first, page_size at a time,
        skipping page * page_size of the newest.

        Raises:
            UnauthorizedError: If key does not authenticate target
            NotACollectionError: If target has no collection
            ValidationError: If page arguments are out of bounds
        """
        target = canonical_identity(target, "target")
        paged = page is not None or page_size is not None
        if paged:
            if page is None:
                page = 0
            if page_size is None:
                page_size = self.config.default_page_size
            if page < 0:
                raise ValidationError("page must be non-negative", field_name="page")
            if page_size < 1 or page_size > self.config.max_page_size:
                raise ValidationError(
                    f"page_size must be between 1 and {self.config.max_page_size}",
                    field_name="page_size",
                )

        async with self._lock:
            self._authenticate(target, key)

            ns = collection_namespace(target)
            total = self._total(target)
            if not paged:
                records = list(self.store.iterate(ns, skip=1))
            else:
                skip = page * page_size
                # Reverse order ends with the sentinel; stop before it
                take = max(0, min(page_size, total - skip))
                records = list(self.store.iterate(ns, reverse=True, skip=skip, take=take))

        return RecordPage(records=records, total=total, page=page, page_size=page_size)

    async def get_record(self, target: str, key: str, position: int) -> Record:
        """Fetch one record by position (0 is the first real record).

        Raises:
            UnauthorizedError: If key does not authenticate target
            NotACollectionError: If target has no collection
            OutOfRangeError: If position is not below the record count
        """
        target = canonical_identity(target, "target")
        async with self._lock:
            self._authenticate(target, key)
            total = self._total(target)
            if position < 0 or position >= total:
                raise OutOfRangeError(position, total)
            return self.store.get(collection_namespace(target), position + 1)

    async def collection_length(self, target: str, key: str) -> int:
        """Number of records deposited for target, sentinel excluded.

        Raises:
            UnauthorizedError: If key does not authenticate target
            NotACollectionError: If target has no collection
        """
        target = canonical_identity(target, "target")
        async with self._lock:
            self._authenticate(target, key)
            return self._total(target)

    async def purge(self, context: ExecutionContext) -> int:
        """Remove every record from the caller's collection except the sentinel.

        Records are popped from the tail down to the sentinel.

        Returns:
            Number of records removed (0 if the caller has no collection)
        """
        identity = canonical_identity(context.sender, "sender")
        async with self._invocation():
            if not self.registry.exists(identity):
                return 0
            removed = self.store.truncate_to(collection_namespace(identity), 1)

        logger.info("Purged records", extra={"identity": identity, "removed": removed})
        return removed
