"""
Configuration management for sheetledger.

All configuration is done via environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Physical table names are unique across collections
    - The storage timeout is always bounded

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Renaming a physical table only needs the TABLE_* variable, never code
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported table storage backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


@dataclass(frozen=True)
class StorageConfig:
    """Table storage configuration.

    Attributes:
        backend: Which backend holds the tables
        path: SQLite database file (ignored by the memory backend)
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        io_timeout_seconds: Upper bound for any single storage call
    """

    backend: StoreBackend = StoreBackend.SQLITE
    path: str = "./data/sheetledger.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    io_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("STORE_BACKEND", "sqlite").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: sqlite, memory"
            )

        return cls(
            backend=backend,
            path=os.getenv("STORE_PATH", "./data/sheetledger.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            io_timeout_seconds=float(os.getenv("STORE_IO_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class TablesConfig:
    """Physical table name for every logical collection.

    Attributes:
        articles: General articles inventory
        food: Food inventory (with expiry dates)
        decor: Decoration inventory
        stationery: Stationery inventory
        users: User directory
        comments: Comment/notification table
        history: Audit ledger
    """

    articles: str = "Articles"
    food: str = "Food"
    decor: str = "Decor"
    stationery: str = "Stationery"
    users: str = "Users"
    comments: str = "Comments"
    history: str = "History"

    @classmethod
    def from_env(cls) -> TablesConfig:
        """Load configuration from environment variables."""
        return cls(
            articles=os.getenv("TABLE_ARTICLES", "Articles"),
            food=os.getenv("TABLE_FOOD", "Food"),
            decor=os.getenv("TABLE_DECOR", "Decor"),
            stationery=os.getenv("TABLE_STATIONERY", "Stationery"),
            users=os.getenv("TABLE_USERS", "Users"),
            comments=os.getenv("TABLE_COMMENTS", "Comments"),
            history=os.getenv("TABLE_HISTORY", "History"),
        )

    def as_mapping(self) -> dict[str, str]:
        """Logical collection name -> physical table name."""
        return {
            "Articles": self.articles,
            "Food": self.food,
            "Decor": self.decor,
            "Stationery": self.stationery,
            "Users": self.users,
            "Comments": self.comments,
            "History": self.history,
        }


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
class AppConfig:
    """Complete application configuration.

    Attributes:
        storage: Table storage configuration
        tables: Physical table names
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    tables: TablesConfig = field(default_factory=TablesConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            tables=TablesConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.storage.io_timeout_seconds <= 0:
            raise ValueError("STORE_IO_TIMEOUT_SECONDS must be positive")

        if self.storage.backend == StoreBackend.SQLITE and not self.storage.path:
            raise ValueError("STORE_PATH is required when STORE_BACKEND=sqlite")

        names = self.tables.as_mapping()
        empty = [logical for logical, physical in names.items() if not physical.strip()]
        if empty:
            raise ValueError(f"Empty physical table name for: {', '.join(empty)}")

        physical = [p.strip() for p in names.values()]
        if len(set(physical)) != len(physical):
            raise ValueError("Physical table names must be unique across collections")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text"
            )

        if self.storage.backend == StoreBackend.SQLITE:
            directory = os.path.dirname(os.path.abspath(self.storage.path))
            if not os.path.exists(directory):
                logger.warning(
                    f"Storage directory does not exist: {directory}. "
                    "It will be created on first write."
                )

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Configuration loaded",
            extra={
                "store_backend": self.storage.backend.value,
                "store_path": self.storage.path
                if self.storage.backend == StoreBackend.SQLITE
                else None,
                "io_timeout_seconds": self.storage.io_timeout_seconds,
                "tables": self.tables.as_mapping(),
                "log_level": self.observability.log_level,
            },
        )
