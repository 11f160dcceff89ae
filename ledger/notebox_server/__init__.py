"""
Notebox Server - Per-recipient append-only notification ledger.

Any sender can deposit a small record (a file reference plus the sender
identity) into a recipient's personal collection. Only the recipient can
enumerate the collection, authenticated by a viewing key rather than by
the origin of the request.

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────────────┐
    │   Client    │────▶│ HTTP gateway │────▶│ NotificationService  │
    └─────────────┘     └──────────────┘     └──────────┬───────────┘
                                                        │
                     ┌──────────────────────┬───────────┴──────────┐
                     ▼                      ▼                      ▼
              ┌─────────────┐      ┌────────────────┐     ┌────────────────┐
              │ KeyedStore  │◀─────│ Collection     │     │ Credential     │
              │ (sequences) │      │ Registry       │     │ Manager        │
              └──────┬──────┘      └────────────────┘     └───────┬────────┘
                     │                                            │
                     ▼                                            ▼
              ┌──────────────────────────────────────────────────────────┐
              │            KVStore (in-memory / SQLite)                  │
              └──────────────────────────────────────────────────────────┘

Invariants:
    - Index 0 of every collection is the owner sentinel, never shown to users
    - Only hashed viewing keys are persisted
    - Key verification takes the same path whether or not a key exists
    - Every service operation commits all of its writes or none of them

How to change safely:
    - Never change the key layout in codec.py without a migration
    - Bump CollectionHeader.version when the header shape changes
    - Keep the zero-buffer comparison in auth.viewing_key intact

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
