"""
In-memory key-value store for testing.

This module provides a dict-backed KVStore for:
- Unit tests
- Integration tests
- Local development without a data directory

Invariants:
    - All data is lost on process exit
    - atomic() buffers writes in an overlay and applies them on success
    - Reads inside atomic() see the overlay first

How to change safely:
    - Keep interface compatible with KVStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from .base import KVStoreClosedError

logger = logging.getLogger(__name__)

# Marks a key deleted inside the pending overlay
_TOMBSTONE = None


class InMemoryKVStore:
    """In-memory implementation of KVStore.

    Attributes:
        write_count: Number of set/delete calls that reached the store

    Example:
        >>> kv = InMemoryKVStore()
        >>> kv.set(b"k", b"v")
        >>> kv.get(b"k")
        b'v'
    """

    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}
        self._pending: Optional[Dict[bytes, Optional[bytes]]] = None
        self._depth = 0
        self._closed = False
        self._fail_after: Optional[int] = None
        self._failure: Optional[Exception] = None
        self.write_count = 0

    def get(self, key: bytes) -> Optional[bytes]:
        self._check_open()
        if self._pending is not None and key in self._pending:
            return self._pending[key]
        return self._data.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self._check_open()
        self._before_write()
        if self._pending is not None:
            self._pending[key] = bytes(value)
        else:
            self._data[key] = bytes(value)

    def delete(self, key: bytes) -> None:
        self._check_open()
        self._before_write()
        if self._pending is not None:
            self._pending[key] = _TOMBSTONE
        else:
            self._data.pop(key, None)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Buffer writes and apply them only if the block succeeds."""
        self._check_open()
        if self._depth == 0:
            self._pending = {}
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                logger.debug(
                    "Discarding uncommitted writes",
                    extra={"pending": len(self._pending or {})},
                )
                self._pending = None
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                pending, self._pending = self._pending or {}, None
                for key, value in pending.items():
                    if value is _TOMBSTONE:
                        self._data.pop(key, None)
                    else:
                        self._data[key] = value

    def close(self) -> None:
        """Close and clear all data."""
        self._closed = True
        self._data.clear()
        self._pending = None
        logger.debug("InMemoryKVStore closed")

    def _check_open(self) -> None:
        if self._closed:
            raise KVStoreClosedError()

    def _before_write(self) -> None:
        self.write_count += 1
        if self._fail_after is not None:
            if self._fail_after == 0:
                failure, self._failure = self._failure, None
                self._fail_after = None
                assert failure is not None
                raise failure
            self._fail_after -= 1

    def inject_failure(self, exception: Exception, after_writes: int = 0) -> None:
        """Make a later write raise (testing helper).

        Args:
            exception: Exception to raise
            after_writes: Number of writes allowed to succeed first
        """
        self._fail_after = after_writes
        self._failure = exception

    def items(self, prefix: bytes = b"") -> List[Tuple[bytes, bytes]]:
        """Committed key/value pairs under a prefix, sorted (testing helper)."""
        return sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))

    def raw_set(self, key: bytes, value: bytes) -> None:
        """Write directly to committed data, bypassing atomic() (testing helper)."""
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)
