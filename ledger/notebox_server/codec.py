"""
Key layout and value encoding for Notebox.

Every value lives in a flat key-value byte store. Keys are built from a
namespace (purpose tag + identity) and a suffix:

    u16be(len(tag)) || tag || u32be(len(identity)) || identity || suffix

    suffix:
        b"L"                 - sequence length counter (u32be)
        b"H"                 - collection header (JSON)
        b"I" || u32be(index) - record at index (JSON)

Viewing keys use the same namespace layout with their own purpose tag and
an empty suffix. Contract state lives under the fixed key CONFIG_KEY.

Invariants:
    - Length-prefixing makes (tag, identity) pairs unambiguous
    - Record indices are big-endian so keys sort in insertion order
    - Decoding never returns partially valid data; it raises CorruptRecordError

How to change safely:
    - Never reorder or resize the length prefixes
    - New suffixes must be single bytes not already in use
    - Bump HEADER_VERSION when CollectionHeader gains required fields
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from typing import Any

from .errors import CorruptRecordError

CONFIG_KEY = b"config"

PURPOSE_RECEIVED = b"transactions"
PURPOSE_VIEWING_KEY = b"viewing_keys"

SUFFIX_LENGTH = b"L"
SUFFIX_HEADER = b"H"
SUFFIX_INDEX = b"I"

HEADER_KIND = "collection"
HEADER_VERSION = 1

MAX_INDEX = 0xFFFFFFFF


@dataclass(frozen=True)
class Namespace:
    """Key-space prefix isolating one identity's data for one purpose.

    Attributes:
        purpose: Purpose tag (raw bytes)
        identity: Owner identity
    """

    purpose: bytes
    identity: str

    @property
    def prefix(self) -> bytes:
        identity_bytes = self.identity.encode("utf-8")
        return (
            struct.pack(">H", len(self.purpose))
            + self.purpose
            + struct.pack(">I", len(identity_bytes))
            + identity_bytes
        )

    @property
    def length_key(self) -> bytes:
        return self.prefix + SUFFIX_LENGTH

    @property
    def header_key(self) -> bytes:
        return self.prefix + SUFFIX_HEADER

    def index_key(self, index: int) -> bytes:
        if index < 0 or index > MAX_INDEX:
            raise ValueError(f"Index out of encodable range: {index}")
        return self.prefix + SUFFIX_INDEX + struct.pack(">I", index)


@dataclass(frozen=True)
class Record:
    """A deposited notification.

    Attributes:
        reference: File path or content reference
        sender: Identity of the depositor (owner marker for the sentinel)
        ts: Block time in Unix ms, if the host supplied one
    """

    reference: str
    sender: str
    ts: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {"reference": self.reference, "sender": self.sender}
        if self.ts is not None:
            data["ts"] = self.ts
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """Create from dictionary.

        Raises:
            CorruptRecordError: If required fields are missing or mistyped
        """
        reference = data.get("reference")
        sender = data.get("sender")
        ts = data.get("ts")
        if not isinstance(reference, str) or not isinstance(sender, str):
            raise CorruptRecordError("Record is missing reference or sender")
        if ts is not None and (not isinstance(ts, int) or isinstance(ts, bool)):
            raise CorruptRecordError("Record timestamp is not an integer")
        return cls(reference=reference, sender=sender, ts=ts)


@dataclass(frozen=True)
class CollectionHeader:
    """Typed metadata stored next to a collection's sentinel.

    Attributes:
        owner: Identity that owns the collection
        version: Header layout version
    """

    owner: str
    version: int = HEADER_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"kind": HEADER_KIND, "version": self.version, "owner": self.owner}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CollectionHeader:
        if data.get("kind") != HEADER_KIND:
            raise CorruptRecordError(f"Unexpected header kind: {data.get('kind')!r}")
        version = data.get("version")
        if version != HEADER_VERSION:
            raise CorruptRecordError(f"Unsupported header version: {version!r}")
        owner = data.get("owner")
        if not isinstance(owner, str):
            raise CorruptRecordError("Header owner is not a string")
        return cls(owner=owner, version=version)


def encode_json(value: dict[str, Any]) -> bytes:
    """Encode a JSON object deterministically."""
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_json(raw: bytes, key: bytes | None = None) -> dict[str, Any]:
    """Decode a JSON object.

    Raises:
        CorruptRecordError: If bytes are not a UTF-8 JSON object
    """
    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptRecordError(f"Invalid JSON value: {e}", key=key) from e
    if not isinstance(value, dict):
        raise CorruptRecordError("JSON value is not an object", key=key)
    return value


def encode_record(record: Record) -> bytes:
    return encode_json(record.to_dict())


def decode_record(raw: bytes, key: bytes | None = None) -> Record:
    return Record.from_dict(decode_json(raw, key))


def encode_header(header: CollectionHeader) -> bytes:
    return encode_json(header.to_dict())


def decode_header(raw: bytes, key: bytes | None = None) -> CollectionHeader:
    return CollectionHeader.from_dict(decode_json(raw, key))


def encode_length(length: int) -> bytes:
    return struct.pack(">I", length)


def decode_length(raw: bytes, key: bytes | None = None) -> int:
    if len(raw) != 4:
        raise CorruptRecordError(f"Length counter has {len(raw)} bytes", key=key)
    return struct.unpack(">I", raw)[0]
