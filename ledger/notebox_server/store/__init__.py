"""
Storage layer for Notebox - sequences and collections.

This module handles:
- Append-only sequences per (purpose, identity) namespace
- Collection creation with an owner sentinel at index 0
- Structural existence checks and owner recovery

Invariants:
    - append is O(1): one key per record plus one length key
    - Absent and empty namespaces are distinguishable
    - The sentinel is the first record of every collection

How to change safely:
    - Never expose index 0 through a listing API
    - Test probes against corrupt data, not only happy paths
"""

from .keyed_store import KeyedStore, SequenceView
from .registry import (
    SENTINEL_REFERENCE,
    CollectionProbe,
    CollectionRegistry,
    ProbeState,
    collection_namespace,
)

__all__ = [
    "KeyedStore",
    "SequenceView",
    "CollectionRegistry",
    "CollectionProbe",
    "ProbeState",
    "SENTINEL_REFERENCE",
    "collection_namespace",
]
