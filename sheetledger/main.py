"""
sheetledger - Main entry point.

This module wires the components together:
- Table storage backend (SQLite or in-memory)
- Collection registry bound to the configured table names
- Tabular store, audit ledger and comment engine
- The structured-result service

Usage:
    sheetledger init
    sheetledger list Articles

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The registry is frozen before any request is served
    - All components share one backend and one set of table locks
    - Logs go to stderr; command output goes to stdout

How to change safely:
    - Add new components in Application.start() and release them in stop()
    - Keep setup_logging() idempotent, tests call it repeatedly
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

import json_log_formatter

from .config import AppConfig
from .engine.comments import CommentEngine
from .engine.records import Clock, utc_now
from .engine.store import TableStore
from .identity import IdentityProvider
from .schema.collections import default_collections
from .schema.registry import CollectionRegistry
from .service import InventoryService
from .storage.base import TableBackend, create_backend

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Application configuration
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


class Application:
    """Owns the lifecycle of every component.

    Attributes:
        config: Application configuration
        backend: Table storage backend
        registry: Collection definitions (frozen on start)
        store: Tabular store engine
        service: Structured-result facade

    Example:
        >>> async with Application(config) as app:
        ...     await app.service.list_active("Articles")
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        backend: Optional[TableBackend] = None,
        identity: Optional[IdentityProvider] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config or AppConfig.from_env()
        self.identity = identity
        self.clock = clock
        self.backend: Optional[TableBackend] = backend
        self.registry: Optional[CollectionRegistry] = None
        self.store: Optional[TableStore] = None
        self.service: Optional[InventoryService] = None
        self._running = False

    async def start(self) -> InventoryService:
        """Create the components and return the service."""
        if self._running and self.service is not None:
            logger.warning("Application already running")
            return self.service

        self.config.log_config()

        if self.backend is None:
            self.backend = create_backend(self.config.storage)

        self.registry = CollectionRegistry(default_collections(self.config.tables))
        self.registry.freeze()

        self.store = TableStore(self.backend, self.registry, clock=self.clock)
        self.service = InventoryService(
            self.store,
            CommentEngine(self.store),
            identity=self.identity,
        )
        self._running = True
        logger.info("sheetledger started")
        return self.service

    async def init_tables(self) -> list[str]:
        """Create every missing collection table."""
        service = self.service if self._running and self.service is not None else await self.start()
        return await service.store.registry.ensure_tables(service.store.backend)

    async def stop(self) -> None:
        if not self._running:
            return
        if self.backend is not None:
            await self.backend.close()
        self._running = False
        logger.info("sheetledger stopped")

    async def __aenter__(self) -> Application:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config)

    from .tools.admin_cli import run

    sys.exit(run(argv, config))


if __name__ == "__main__":
    main()
