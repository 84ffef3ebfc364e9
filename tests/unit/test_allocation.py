"""
Unit tests for identifier allocation, row lookup and table locks.

Tests cover:
- Parsing id cells
- max + 1 allocation, frozen rows and gaps
- Locating rows by normalised id
- Per-table lock registry
"""

import pytest

from sheetledger.engine.allocator import IdAllocator, max_id, parse_id
from sheetledger.engine.locator import RowLocator, normalize_id
from sheetledger.engine.locks import TableLocks
from sheetledger.storage.memory import InMemoryTableBackend


@pytest.fixture
def backend():
    """Create in-memory backend."""
    return InMemoryTableBackend()


class TestIdAllocator:
    """Tests for IdAllocator."""

    def test_parse_id(self):
        assert parse_id(7) == 7
        assert parse_id("7") == 7
        assert parse_id(7.0) == 7
        assert parse_id("") is None
        assert parse_id("abc") is None
        assert parse_id(7.5) is None
        assert parse_id(True) is None

    def test_max_id(self):
        assert max_id([]) == 0
        assert max_id(["", "x", 3, "12", 4.0]) == 12

    @pytest.mark.asyncio
    async def test_empty_table_starts_at_one(self, backend):
        await backend.create_table("Articles", ["Id", "Product"])

        assert await IdAllocator(backend).next_id("Articles", 0) == 1

    @pytest.mark.asyncio
    async def test_max_plus_one_with_gaps(self, backend):
        """Gaps are not reused; junk cells are ignored."""
        await backend.create_table("Articles", ["Id", "Product"])
        for value in [1, 5, "", "n/a", 3]:
            await backend.append_row("Articles", [value, "x"])

        assert await IdAllocator(backend).next_id("Articles", 0) == 6

    @pytest.mark.asyncio
    async def test_skips_frozen_rows(self, backend):
        """Frozen rows below the header are not data."""
        await backend.create_table("Articles", ["Id", "Product"])
        await backend.append_row("Articles", [900, "Totals"])
        await backend.append_row("Articles", [4, "Widget"])
        backend.set_frozen_rows("Articles", 2)

        assert await IdAllocator(backend).next_id("Articles", 0) == 5


class TestRowLocator:
    """Tests for RowLocator."""

    def test_normalize_id(self):
        assert normalize_id(7) == "7"
        assert normalize_id(7.0) == "7"
        assert normalize_id("7.0") == "7"
        assert normalize_id(" 12 ") == "12"
        assert normalize_id("A-1") == "A-1"
        assert normalize_id(None) == ""

    @pytest.mark.asyncio
    async def test_find_row(self, backend):
        """Ids match across int, float and text representations."""
        await backend.create_table("Articles", ["Id", "Product"])
        await backend.append_row("Articles", [1, "Widget"])
        await backend.append_row("Articles", [2.0, "Gadget"])
        locator = RowLocator(backend)

        assert await locator.find_row("Articles", 0, 1) == 1
        assert await locator.find_row("Articles", 0, "2") == 2
        assert await locator.find_row("Articles", 0, "2.0") == 2
        assert await locator.find_row("Articles", 0, 3) is None

    @pytest.mark.asyncio
    async def test_blank_key_never_matches(self, backend):
        """Blank ids and missing id columns do not resolve."""
        await backend.create_table("Articles", ["Id", "Product"])
        await backend.append_row("Articles", ["", "Orphan"])
        locator = RowLocator(backend)

        assert await locator.find_row("Articles", 0, "") is None
        assert await locator.find_row("Articles", 0, None) is None
        assert await locator.find_row("Articles", -1, 1) is None


class TestTableLocks:
    """Tests for TableLocks."""

    def test_one_lock_per_table(self):
        locks = TableLocks()

        assert locks.for_table("Articles") is locks.for_table("Articles")
        assert locks.for_table("Articles") is not locks.for_table("Food")

    @pytest.mark.asyncio
    async def test_locked(self):
        locks = TableLocks()

        assert not locks.locked("Articles")
        async with locks.for_table("Articles"):
            assert locks.locked("Articles")
            assert not locks.locked("Food")
        assert not locks.locked("Articles")
