"""
Append-only sequence storage over a flat key-value store.

One logical sequence exists per Namespace (purpose tag + identity). Each
record is stored under its own key and the length counter lives in a
separate key, so append and pop touch exactly two keys regardless of the
collection size.

Invariants:
    - length == number of reachable records; indices 0..length-1 are populated
    - A namespace with no length key is absent, which differs from length 0
    - Pop and truncation only rewrite the counter; cells past the new length stay
      behind as orphans and are unreachable because length gates every read
    - Records are never modified in place

How to change safely:
    - Any change to key construction belongs in codec.py
    - Keep iterate() restartable: it must re-read the store on each pass
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator

from ..codec import Namespace, Record, decode_length, decode_record, encode_length, encode_record
from ..errors import CorruptRecordError, OutOfRangeError
from ..kv import KVStore

logger = logging.getLogger(__name__)


class SequenceView:
    """Lazy, restartable view over part of a sequence.

    Each iteration reads the current length and records from the store,
    so iterating twice re-reads rather than resuming.
    """

    def __init__(
        self,
        store: KeyedStore,
        namespace: Namespace,
        reverse: bool = False,
        skip: int = 0,
        take: int | None = None,
    ) -> None:
        if skip < 0:
            raise ValueError(f"skip must be non-negative, got {skip}")
        if take is not None and take < 0:
            raise ValueError(f"take must be non-negative, got {take}")
        self._store = store
        self._namespace = namespace
        self.reverse = reverse
        self.skip = skip
        self.take = take

    def _indices(self) -> Iterator[int]:
        length = self._store.length(self._namespace)
        indices = range(length - 1, -1, -1) if self.reverse else range(length)
        stop = None if self.take is None else self.skip + self.take
        return itertools.islice(indices, self.skip, stop)

    def __iter__(self) -> Iterator[Record]:
        for index in self._indices():
            yield self._store.get(self._namespace, index)


class KeyedStore:
    """Append-only sequences addressed by (namespace, index).

    Example:
        >>> store = KeyedStore(InMemoryKVStore())
        >>> ns = Namespace(b"transactions", "alice")
        >>> store.append(ns, Record("notes/report.pdf", "bob"))
        0
        >>> store.length(ns)
        1
    """

    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    def is_absent(self, namespace: Namespace) -> bool:
        """True if the namespace has never been written."""
        return self.kv.get(namespace.length_key) is None

    def length(self, namespace: Namespace) -> int:
        """Number of records; 0 if the namespace is absent."""
        key = namespace.length_key
        raw = self.kv.get(key)
        if raw is None:
            return 0
        return decode_length(raw, key)

    def append(self, namespace: Namespace, record: Record) -> int:
        """Append a record.

        Returns:
            Index the record was stored at
        """
        index = self.length(namespace)
        self.kv.set(namespace.index_key(index), encode_record(record))
        self.kv.set(namespace.length_key, encode_length(index + 1))
        return index

    def get(self, namespace: Namespace, index: int) -> Record:
        """Read the record at index.

        Raises:
            OutOfRangeError: If index is negative or not below the length
            CorruptRecordError: If the cell is missing or undecodable
        """
        length = self.length(namespace)
        if index < 0 or index >= length:
            raise OutOfRangeError(index, length)
        key = namespace.index_key(index)
        raw = self.kv.get(key)
        if raw is None:
            raise CorruptRecordError(f"Record cell {index} missing below length {length}", key=key)
        return decode_record(raw, key)

    def pop(self, namespace: Namespace) -> Record:
        """Remove and return the last record.

        Raises:
            OutOfRangeError: If the sequence is empty
        """
        length = self.length(namespace)
        if length == 0:
            raise OutOfRangeError(0, 0)
        record = self.get(namespace, length - 1)
        self.kv.set(namespace.length_key, encode_length(length - 1))
        return record

    def truncate_to(self, namespace: Namespace, new_length: int) -> int:
        """Shrink the sequence to new_length records by popping from the tail.

        Returns:
            Number of records removed

        Raises:
            OutOfRangeError: If new_length is negative or exceeds the length
        """
        length = self.length(namespace)
        if new_length < 0 or new_length > length:
            raise OutOfRangeError(new_length, length)
        if new_length == length:
            return 0
        for _ in range(length - new_length):
            self.pop(namespace)
        logger.debug(
            "Truncated sequence",
            extra={"identity": namespace.identity, "old_length": length, "new_length": new_length},
        )
        return length - new_length

    def iterate(
        self,
        namespace: Namespace,
        reverse: bool = False,
        skip: int = 0,
        take: int | None = None,
    ) -> SequenceView:
        """Lazy view of records, in insertion order unless reverse is set."""
        return SequenceView(self, namespace, reverse=reverse, skip=skip, take=take)
