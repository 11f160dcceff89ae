"""
Contract state and per-invocation context for Notebox.

ContractState is written once at deployment under CONFIG_KEY and passed
explicitly to the service afterwards; nothing here is a module-level
singleton. ExecutionContext is what the host hands to every invocation.

Invariants:
    - ContractState is saved exactly once per store
    - prng_seed is sha256(base64(seed entropy)) and is never logged
    - A missing ContractState is fatal (StateNotFoundError)
"""

from __future__ import annotations

import base64
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .codec import CONFIG_KEY, decode_json, encode_json
from .errors import CorruptRecordError, StateNotFoundError, ValidationError
from .kv import KVStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    """Host-supplied metadata for one invocation.

    Attributes:
        sender: Identity that sent the request
        block_height: Height of the block being executed
        block_time: Block time (Unix seconds), None if the host has no clock
        contract_address: Address of this contract instance
    """

    sender: str
    block_height: int = 0
    block_time: int | None = None
    contract_address: str = ""

    @classmethod
    def now(cls, sender: str, contract_address: str = "", block_height: int = 0) -> ExecutionContext:
        """Context stamped with the local clock, for hosts without blocks."""
        return cls(
            sender=sender,
            block_height=block_height,
            block_time=int(time.time()),
            contract_address=contract_address,
        )

    @property
    def block_time_ms(self) -> int | None:
        if self.block_time is None:
            return None
        return self.block_time * 1000


@dataclass(frozen=True)
class ContractState:
    """Deployment-time record.

    Attributes:
        deployer: Identity that deployed the instance
        contract: Address of the instance
        prng_seed: Secret seed for viewing-key derivation
    """

    deployer: str
    contract: str
    prng_seed: bytes = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployer": self.deployer,
            "contract": self.contract,
            "prng_seed": base64.b64encode(self.prng_seed).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContractState:
        try:
            return cls(
                deployer=data["deployer"],
                contract=data["contract"],
                prng_seed=base64.b64decode(data["prng_seed"], validate=True),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptRecordError(f"Invalid contract state: {e}", key=CONFIG_KEY) from e


def canonical_identity(identity: str, field_name: str = "identity") -> str:
    """Canonicalize an identity once at the boundary.

    Raises:
        ValidationError: If the identity is not a non-empty string
    """
    if not isinstance(identity, str):
        raise ValidationError(f"{field_name} must be a string", field_name=field_name)
    canonical = identity.strip()
    if not canonical:
        raise ValidationError(f"{field_name} must not be empty", field_name=field_name)
    return canonical


def derive_prng_seed(seed_entropy: str) -> bytes:
    """Hash deployment entropy into the contract's secret seed."""
    return hashlib.sha256(base64.b64encode(seed_entropy.encode("utf-8"))).digest()


def save_state(kv: KVStore, state: ContractState) -> None:
    """Write contract state.

    Raises:
        ValidationError: If state was already written
    """
    if kv.get(CONFIG_KEY) is not None:
        raise ValidationError("Contract state already exists", field_name="config")
    kv.set(CONFIG_KEY, encode_json(state.to_dict()))
    logger.info(
        "Contract state saved",
        extra={"deployer": state.deployer, "contract": state.contract},
    )


def load_state(kv: KVStore) -> ContractState:
    """Read contract state.

    Raises:
        StateNotFoundError: If the store was never instantiated
        CorruptRecordError: If the stored state cannot be decoded
    """
    raw = kv.get(CONFIG_KEY)
    if raw is None:
        raise StateNotFoundError()
    return ContractState.from_dict(decode_json(raw, CONFIG_KEY))
