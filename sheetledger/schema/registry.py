"""
Collection registry for sheetledger.

The CollectionRegistry is the configuration enumeration that maps logical
collection names (Articles, Food, ..., History) to their definitions and
physical tables.

Invariants:
    - Registry is mutable during startup, frozen before serving
    - Logical names are unique case-insensitively
    - Physical table names are unique
    - Fingerprint changes when any collection definition changes

How to change safely:
    - Register every collection before calling freeze()
    - Rename physical tables through TablesConfig, not here
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional

from ..errors import ConfigurationError
from .types import CollectionDef

if TYPE_CHECKING:
    from ..storage.base import TableBackend

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when a collection name or table is registered twice."""
    pass


class CollectionRegistry:
    """Registry of collection definitions.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Example:
        >>> registry = CollectionRegistry(default_collections())
        >>> registry.freeze()
        'sha256:...'
        >>> registry.require("articles").table
        'Articles'
    """

    def __init__(self, collections: Iterable[CollectionDef] = ()) -> None:
        self._by_name: Dict[str, CollectionDef] = {}
        self._by_table: Dict[str, CollectionDef] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()
        for collection in collections:
            self.register(collection)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Registry fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, collection: CollectionDef) -> None:
        """Register a collection definition.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the name or table is taken
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register collection '{collection.name}': registry is frozen"
                )

            key = collection.name.lower()
            if key in self._by_name:
                raise DuplicateRegistrationError(
                    f"Collection '{collection.name}' already registered"
                )

            if collection.table in self._by_table:
                existing = self._by_table[collection.table]
                raise DuplicateRegistrationError(
                    f"Table '{collection.table}' already used by collection '{existing.name}'"
                )

            self._by_name[key] = collection
            self._by_table[collection.table] = collection
            logger.debug(
                f"Registered collection: {collection.name} (table={collection.table})"
            )

    def get(self, name: str) -> Optional[CollectionDef]:
        """Look up a collection by logical name (case-insensitive)."""
        return self._by_name.get(name.strip().lower())

    def get_by_table(self, table: str) -> Optional[CollectionDef]:
        """Look up a collection by physical table name."""
        return self._by_table.get(table)

    def require(self, name: str) -> CollectionDef:
        """Look up a collection by logical or physical name.

        Raises:
            ConfigurationError: If no collection matches
        """
        collection = self.get(name) or self.get_by_table(name)
        if collection is None:
            known = ", ".join(c.name for c in self._by_name.values())
            raise ConfigurationError(
                f"Unknown collection '{name}'. Known collections: {known}",
                table=name,
            )
        return collection

    def collections(self) -> Iterator[CollectionDef]:
        """Iterate over registered collections in registration order."""
        yield from self._by_name.values()

    def names(self) -> List[str]:
        return [c.name for c in self._by_name.values()]

    def freeze(self) -> str:
        """Freeze the registry and compute its fingerprint.

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Collection registry frozen with {len(self._by_name)} collections, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"

    def to_dict(self) -> dict:
        """Dictionary representation, sorted by name for determinism."""
        return {
            "collections": [
                {
                    "name": c.name,
                    "table": c.table,
                    "header": list(c.header),
                    "fields": [f.key for f in c.fields],
                    "append_only": c.append_only,
                }
                for c in sorted(self._by_name.values(), key=lambda c: c.name)
            ]
        }

    async def ensure_tables(self, backend: TableBackend) -> List[str]:
        """Create every missing physical table with its default header.

        Returns:
            Names of the tables that were created
        """
        created = []
        for collection in self.collections():
            if not await backend.table_exists(collection.table):
                await backend.create_table(collection.table, list(collection.header))
                created.append(collection.table)
        if created:
            logger.info(f"Created missing tables: {', '.join(created)}")
        return created
