"""
Notebox Server - Main entry point.

This module starts the HTTP gateway in front of a NotificationService:
- Opens the configured key-value store
- Loads contract state, or instantiates it on an empty store
- Serves the handle/query API with uvicorn

Usage:
    python -m ledger.notebox_server.main

Configuration is entirely via environment variables.
See config.py and api/settings.py for all available settings.

Invariants:
    - An empty store is instantiated only when PRNG_SEED is set
    - The store is closed on shutdown
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api import Settings, create_app
from .config import ServerConfig
from .errors import StateNotFoundError
from .kv import KVStore, create_kv_store
from .service import NotificationService
from .state import ExecutionContext

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def open_service(config: ServerConfig, kv: KVStore) -> NotificationService:
    """Attach to deployed state, instantiating it on first start.

    Raises:
        ValueError: If the store is empty and PRNG_SEED is not set
    """
    try:
        service = NotificationService.attach(kv, config.service)
        logger.info("Attached to existing contract state", extra={"contract": service.state.contract})
        return service
    except StateNotFoundError:
        if config.deployment.prng_seed is None:
            raise ValueError("PRNG_SEED is required to instantiate an empty store")

    context = ExecutionContext.now(
        sender=config.deployment.deployer,
        contract_address=config.deployment.contract_address,
    )
    return NotificationService.instantiate(
        kv,
        context,
        config.deployment.prng_seed,
        config.service,
    )


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)
    config.log_config()

    kv = create_kv_store(config)
    try:
        try:
            service = open_service(config, kv)
        except ValueError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)

        settings = Settings()
        app = create_app(service, settings)
        logger.info("Starting Notebox gateway", extra={"host": settings.host, "port": settings.port})
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    finally:
        kv.close()
        logger.info("Notebox server stopped")


if __name__ == "__main__":
    main()
