"""
Unit tests for the collection registry.

Tests cover:
- Collection registration
- Lookup by logical and physical name
- Duplicate detection
- Registry freezing and fingerprints
- Creating missing tables
"""

import pytest

from sheetledger.config import TablesConfig
from sheetledger.errors import ConfigurationError
from sheetledger.schema.collections import (
    ARTICLES_DEF,
    DEFAULT_COLLECTIONS,
    HISTORY_DEF,
    default_collections,
)
from sheetledger.schema.registry import (
    CollectionRegistry,
    DuplicateRegistrationError,
    RegistryFrozenError,
)
from sheetledger.storage.memory import InMemoryTableBackend


class TestCollectionRegistry:
    """Tests for CollectionRegistry."""

    def test_register_and_lookup(self):
        """Collections are found by logical name in any case."""
        registry = CollectionRegistry()
        registry.register(ARTICLES_DEF)

        assert registry.get("Articles") is ARTICLES_DEF
        assert registry.get(" articles ") is ARTICLES_DEF
        assert registry.get("Food") is None

    def test_lookup_by_table(self):
        """require() accepts the physical table name too."""
        registry = CollectionRegistry([ARTICLES_DEF.with_table("Inventario")])

        assert registry.get_by_table("Inventario").name == "Articles"
        assert registry.require("Inventario").name == "Articles"
        assert registry.require("ARTICLES").table == "Inventario"

    def test_require_unknown(self):
        """Unknown collections are configuration errors."""
        registry = CollectionRegistry(DEFAULT_COLLECTIONS)

        with pytest.raises(ConfigurationError, match="Unknown collection 'Toys'"):
            registry.require("Toys")

    def test_duplicate_name(self):
        registry = CollectionRegistry([ARTICLES_DEF])

        with pytest.raises(DuplicateRegistrationError, match="already registered"):
            registry.register(ARTICLES_DEF.with_table("Other"))

    def test_duplicate_table(self):
        registry = CollectionRegistry([ARTICLES_DEF])

        with pytest.raises(DuplicateRegistrationError, match="already used"):
            registry.register(HISTORY_DEF.with_table("Articles"))

    def test_names_keep_registration_order(self):
        registry = CollectionRegistry(DEFAULT_COLLECTIONS)

        assert registry.names() == [
            "Articles", "Food", "Decor", "Stationery", "Users", "Comments", "History",
        ]

    def test_freeze(self):
        """Frozen registries reject registration and a second freeze."""
        registry = CollectionRegistry([ARTICLES_DEF])
        fingerprint = registry.freeze()

        assert registry.frozen
        assert fingerprint.startswith("sha256:")
        assert registry.fingerprint == fingerprint
        with pytest.raises(RegistryFrozenError):
            registry.register(HISTORY_DEF)
        with pytest.raises(RegistryFrozenError):
            registry.freeze()

    def test_fingerprint_is_deterministic(self):
        """Registration order does not change the fingerprint."""
        first = CollectionRegistry([ARTICLES_DEF, HISTORY_DEF])
        second = CollectionRegistry([HISTORY_DEF, ARTICLES_DEF])

        assert first.freeze() == second.freeze()

    def test_fingerprint_tracks_table_names(self):
        """Renaming a physical table changes the fingerprint."""
        first = CollectionRegistry(default_collections())
        second = CollectionRegistry(default_collections(TablesConfig(history="Historial")))

        assert first.freeze() != second.freeze()

    def test_default_collections_use_configured_tables(self):
        collections = default_collections(TablesConfig(food="Alimentos"))
        tables = {c.name: c.table for c in collections}

        assert tables["Food"] == "Alimentos"
        assert tables["Articles"] == "Articles"

    @pytest.mark.asyncio
    async def test_ensure_tables(self):
        """Missing tables are created with their default header."""
        backend = InMemoryTableBackend()
        await backend.create_table("Articles", ["Id", "Product"])
        registry = CollectionRegistry(DEFAULT_COLLECTIONS)

        created = await registry.ensure_tables(backend)

        assert "Articles" not in created
        assert set(created) == {"Food", "Decor", "Stationery", "Users", "Comments", "History"}
        assert await backend.get_header("History") == list(HISTORY_DEF.header)
        assert await registry.ensure_tables(backend) == []
