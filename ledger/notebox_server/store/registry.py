"""
Collection lifecycle for Notebox.

A collection is the received-records sequence of one identity. It is
created lazily, either by initialize or by the first deposit, and always
starts with a sentinel record at index 0 whose sender is the owner.
A typed CollectionHeader is written next to it under a dedicated key.

Existence is decided structurally, never by a separate flag:
    1. Header key present and decodable  -> PRESENT (owner from header)
    2. Header key present but undecodable -> CORRUPT
    3. Header key missing: decode index 0 as a Record
         decodes      -> PRESENT (owner from the sentinel)
         missing      -> ABSENT
         undecodable  -> CORRUPT

Invariants:
    - Index 0 is never a user-visible record
    - Only ABSENT namespaces may be created
    - Probing never raises for bad data; it reports CORRUPT
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..codec import PURPOSE_RECEIVED, CollectionHeader, Namespace, Record, decode_header, encode_header
from ..errors import AlreadyExistsError, CorruptRecordError, NotACollectionError, OutOfRangeError
from .keyed_store import KeyedStore

logger = logging.getLogger(__name__)

SENTINEL_REFERENCE = "placeholder/homefolder/sentinel"


class ProbeState(Enum):
    """Result of looking for a collection."""

    ABSENT = "absent"
    CORRUPT = "corrupt"
    PRESENT = "present"


@dataclass(frozen=True)
class CollectionProbe:
    """Outcome of a structural existence check.

    Attributes:
        state: Whether the collection is absent, corrupt or present
        owner: Owner identity when present
        source: "header" or "sentinel", whichever established the owner
    """

    state: ProbeState
    owner: str | None = None
    source: str | None = None


def collection_namespace(identity: str) -> Namespace:
    return Namespace(PURPOSE_RECEIVED, identity)


class CollectionRegistry:
    """Creates collections and recovers their owners.

    Example:
        >>> registry = CollectionRegistry(KeyedStore(InMemoryKVStore()))
        >>> registry.exists("alice")
        False
        >>> registry.create_with_sentinel("alice")
        >>> registry.owner_of("alice")
        'alice'
    """

    def __init__(self, store: KeyedStore) -> None:
        self.store = store

    def probe(self, identity: str) -> CollectionProbe:
        """Look for a collection without raising on bad data."""
        ns = collection_namespace(identity)
        raw = self.store.kv.get(ns.header_key)
        if raw is not None:
            try:
                header = decode_header(raw, ns.header_key)
            except CorruptRecordError as e:
                logger.warning(
                    "Undecodable collection header",
                    extra={"identity": identity, "error": e.message},
                )
                return CollectionProbe(ProbeState.CORRUPT)
            return CollectionProbe(ProbeState.PRESENT, owner=header.owner, source="header")

        try:
            sentinel = self.store.get(ns, 0)
        except OutOfRangeError:
            return CollectionProbe(ProbeState.ABSENT)
        except CorruptRecordError as e:
            logger.warning(
                "Namespace does not hold a collection",
                extra={"identity": identity, "error": e.message},
            )
            return CollectionProbe(ProbeState.CORRUPT)
        return CollectionProbe(ProbeState.PRESENT, owner=sentinel.sender, source="sentinel")

    def exists(self, identity: str) -> bool:
        return self.probe(identity).state is ProbeState.PRESENT

    def create_with_sentinel(self, identity: str, ts: int | None = None) -> None:
        """Create the collection with its header and owner sentinel.

        Args:
            identity: Owner identity
            ts: Optional timestamp for the sentinel record

        Raises:
            AlreadyExistsError: If the collection exists
            NotACollectionError: If the namespace holds undecodable data
        """
        probe = self.probe(identity)
        if probe.state is ProbeState.PRESENT:
            raise AlreadyExistsError(identity)
        if probe.state is ProbeState.CORRUPT:
            raise NotACollectionError(identity, "namespace holds undecodable data")

        ns = collection_namespace(identity)
        self.store.kv.set(ns.header_key, encode_header(CollectionHeader(owner=identity)))
        # ABSENT implies length 0, so the sentinel lands at index 0
        self.store.append(ns, Record(reference=SENTINEL_REFERENCE, sender=identity, ts=ts))
        logger.info("Created collection", extra={"identity": identity})

    def owner_of(self, identity: str) -> str:
        """Recover the owner of an identity's collection.

        Raises:
            NotACollectionError: If absent, undecodable, or header and
                sentinel disagree
        """
        probe = self.probe(identity)
        if probe.state is ProbeState.ABSENT:
            raise NotACollectionError(identity, "absent")
        if probe.state is ProbeState.CORRUPT:
            raise NotACollectionError(identity, "undecodable")
        assert probe.owner is not None

        if probe.source == "header":
            try:
                sentinel = self.store.get(collection_namespace(identity), 0)
            except (OutOfRangeError, CorruptRecordError) as e:
                raise NotACollectionError(identity, "sentinel unreadable") from e
            if sentinel.sender != probe.owner:
                raise NotACollectionError(identity, "header and sentinel disagree on owner")

        return probe.owner
