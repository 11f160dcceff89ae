"""
Configuration management for Notebox Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set PRNG_SEED before the first start
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class KVBackend(Enum):
    """Supported key-value store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        backend: Which key-value backend to use
        data_dir: Directory for the SQLite database
        db_name: SQLite database file name
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: KVBackend = KVBackend.SQLITE
    data_dir: str = "/var/lib/notebox"
    db_name: str = "notebox.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @property
    def db_path(self) -> str:
        return str(Path(self.data_dir) / self.db_name)

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("KV_BACKEND", "sqlite").lower()
        try:
            backend = KVBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid KV_BACKEND '{backend_str}'. Must be one of: memory, sqlite")

        return cls(
            backend=backend,
            data_dir=os.getenv("DATA_DIR", "/var/lib/notebox"),
            db_name=os.getenv("SQLITE_DB_NAME", "notebox.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class ServiceConfig:
    """Notification service limits.

    Attributes:
        max_reference_length: Longest accepted record reference
        default_page_size: Page size when a page is requested without a size
        max_page_size: Largest accepted page size
    """

    max_reference_length: int = 280
    default_page_size: int = 50
    max_page_size: int = 200

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load configuration from environment variables."""
        return cls(
            max_reference_length=int(os.getenv("MAX_REFERENCE_LENGTH", "280")),
            default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "50")),
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", "200")),
        )


@dataclass(frozen=True)
class DeploymentConfig:
    """Values used once, when an empty store is instantiated.

    Attributes:
        deployer: Identity recorded as the deployer
        contract_address: Address recorded for this instance
        prng_seed: Entropy hashed into the viewing-key seed (secret)
    """

    deployer: str = "deployer"
    contract_address: str = "notebox"
    prng_seed: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> DeploymentConfig:
        """Load configuration from environment variables."""
        return cls(
            deployer=os.getenv("DEPLOYER", "deployer"),
            contract_address=os.getenv("CONTRACT_ADDRESS", "notebox"),
            prng_seed=os.getenv("PRNG_SEED"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Key-value storage configuration
        service: Notification service limits
        deployment: First-start deployment values
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            service=ServiceConfig.from_env(),
            deployment=DeploymentConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.service.max_reference_length <= 0:
            raise ValueError("MAX_REFERENCE_LENGTH must be positive")
        if self.service.default_page_size <= 0:
            raise ValueError("DEFAULT_PAGE_SIZE must be positive")
        if self.service.max_page_size < self.service.default_page_size:
            raise ValueError("MAX_PAGE_SIZE must be at least DEFAULT_PAGE_SIZE")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.storage.backend == KVBackend.SQLITE and not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )
        if self.storage.backend == KVBackend.MEMORY:
            logger.warning("Using in-memory storage; all data is lost on exit")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "kv_backend": self.storage.backend.value,
                "db_path": self.storage.db_path
                if self.storage.backend == KVBackend.SQLITE
                else None,
                "max_reference_length": self.service.max_reference_length,
                "max_page_size": self.service.max_page_size,
                "deployer": self.deployment.deployer,
                "contract_address": self.deployment.contract_address,
                "prng_seed_set": self.deployment.prng_seed is not None,
                "log_level": self.observability.log_level,
            },
        )
