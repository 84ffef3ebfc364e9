"""
Unit tests for the schema layer.

Tests cover:
- Header resolution (trimming, blanks, duplicates, empty tables)
- Binding collections to headers (roles, aliases, fatal columns)
- Field kinds and coercion
- Collection definition validation
"""

import logging
from datetime import date, datetime

import pytest

from sheetledger.errors import ConfigurationError, ValidationError
from sheetledger.schema.collections import ARTICLES_DEF, COMMENTS_DEF, USERS_DEF
from sheetledger.schema.resolver import SchemaResolver
from sheetledger.schema.types import (
    CollectionDef,
    ColumnRole,
    FieldBinding,
    FieldKind,
    as_bool,
    as_number,
    binding,
    coerce_bool,
    coerce_date,
    coerce_number,
)


class TestResolve:
    """Tests for SchemaResolver.resolve."""

    def test_trims_names(self):
        """Column names are trimmed and indexed by position."""
        schema = SchemaResolver().resolve(["Id", " Product ", "Status"])

        assert schema.columns == ("Id", "Product", "Status")
        assert schema.index_of("Product") == 1
        assert schema.width == 3

    def test_missing_column_is_minus_one(self):
        """Unknown names resolve to -1 instead of raising."""
        schema = SchemaResolver().resolve(["Id", "Product"])

        assert schema.index_of("Price") == -1
        assert "Price" not in schema

    def test_lookup_is_case_sensitive(self):
        """Name lookup does not fold case."""
        schema = SchemaResolver().resolve(["Id", "Product"])

        assert schema.index_of("product") == -1

    def test_empty_header(self):
        """An empty table has an empty schema."""
        schema = SchemaResolver().resolve([])

        assert schema.is_empty
        assert schema.index_of("Id") == -1

    def test_duplicates_last_wins(self, caplog):
        """Duplicate names resolve to their last occurrence and are logged."""
        with caplog.at_level(logging.WARNING):
            schema = SchemaResolver().resolve(["Id", "Qty", "Product", "Qty"], table="Articles")

        assert schema.index_of("Qty") == 3
        assert schema.duplicates == ("Qty",)
        assert "Duplicate header names" in caplog.text

    def test_blank_cells_keep_positions(self):
        """Blank header cells are skipped but later columns keep their index."""
        schema = SchemaResolver().resolve(["Id", "", "Product", "", ""])

        assert schema.columns == ("Id", "", "Product")
        assert schema.index_of("Product") == 2
        assert schema.index_of("") == -1


class TestBind:
    """Tests for SchemaResolver.bind."""

    def bind(self, collection, header):
        resolver = SchemaResolver()
        return resolver.bind(collection, resolver.resolve(header))

    def test_default_header_binds_every_role(self):
        """The default Articles header binds all declared roles."""
        column_map = self.bind(ARTICLES_DEF, list(ARTICLES_DEF.header))

        for role in ARTICLES_DEF.roles:
            assert column_map.has(role), role
        assert column_map.index(ColumnRole.ID) == 0
        assert column_map.header(ColumnRole.LATEST_COMMENT) == "Comments"

    def test_id_is_case_insensitive(self):
        """The id column matches 'Id' in any case."""
        column_map = self.bind(ARTICLES_DEF, ["ID", "Product"])

        assert column_map.index(ColumnRole.ID) == 0

    def test_missing_optional_role(self):
        """Missing non-fatal columns resolve to -1."""
        column_map = self.bind(ARTICLES_DEF, ["Id", "Product", "Received", "Issued"])

        assert column_map.index(ColumnRole.STATUS) == -1
        assert not column_map.has(ColumnRole.STATUS)
        assert column_map.header(ColumnRole.STATUS) is None
        assert column_map.field_index("program") == -1

    def test_missing_id_is_fatal(self):
        """A header without an Id column is a configuration error."""
        with pytest.raises(ConfigurationError, match="no 'Id' column"):
            self.bind(ARTICLES_DEF, ["Product", "Status"])

    def test_missing_label_is_fatal(self):
        """A header without the label column is a configuration error."""
        with pytest.raises(ConfigurationError) as exc_info:
            self.bind(ARTICLES_DEF, ["Id", "Status"])

        assert exc_info.value.column == "Product"
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_empty_header_binds_without_error(self):
        """An empty table binds to a map with no columns."""
        column_map = self.bind(ARTICLES_DEF, [])

        assert column_map.index(ColumnRole.ID) == -1
        with pytest.raises(ConfigurationError):
            column_map.require(ColumnRole.ID)

    def test_legacy_aliases(self):
        """Historical Spanish headers bind to the same roles."""
        column_map = self.bind(
            ARTICLES_DEF,
            ["Id", "PRODUCTO", "Ingresos", "Salidas", "Unidades disponibles", "Estado"],
        )

        assert column_map.index(ColumnRole.RECEIVED) == 2
        assert column_map.index(ColumnRole.AVAILABLE) == 4
        assert column_map.header(ColumnRole.STATUS) == "Estado"
        assert column_map.field_index("product") == 1
        assert column_map.field_index("received") == 2

    def test_users_label_is_username(self):
        """Users bind UserName as their label."""
        column_map = self.bind(USERS_DEF, list(USERS_DEF.header))

        assert column_map.header(ColumnRole.LABEL) == "UserName"
        assert column_map.field_index("full_name") == 1

    def test_comments_have_no_status(self):
        """The Comments table binds without a status column."""
        column_map = self.bind(COMMENTS_DEF, list(COMMENTS_DEF.header))

        assert not column_map.has(ColumnRole.STATUS)
        assert column_map.field_index("reply_confirmed") == 13


class TestCoercion:
    """Tests for field kinds and coercion helpers."""

    def test_numbers(self):
        assert coerce_number("10") == 10
        assert isinstance(coerce_number("10"), int)
        assert coerce_number("2.5") == 2.5
        assert isinstance(coerce_number(4.0), int)

    def test_invalid_numbers(self):
        with pytest.raises(ValidationError, match="must be a number"):
            coerce_number("abc", "received")
        with pytest.raises(ValidationError):
            coerce_number(True)
        with pytest.raises(ValidationError):
            coerce_number(float("nan"))

    def test_booleans(self):
        assert coerce_bool("yes") is True
        assert coerce_bool("FALSE") is False
        assert coerce_bool(1) is True
        with pytest.raises(ValidationError):
            coerce_bool("maybe")

    def test_dates(self):
        assert coerce_date("2024-05-01") == date(2024, 5, 1)
        assert coerce_date("2024-05-01T10:00:00") == datetime(2024, 5, 1, 10, 0)
        with pytest.raises(ValidationError, match="ISO-8601"):
            coerce_date("tomorrow", "expires_on")

    def test_tolerant_cell_readers(self):
        """Stored cells read leniently."""
        assert as_number("") == 0
        assert as_number("junk") == 0
        assert as_number("7") == 7
        assert as_bool("TRUE") is True
        assert as_bool("") is False
        assert as_bool(True) is True

    def test_binding_coerces_by_kind(self):
        price = binding("price", "Price", "number")

        assert price.kind == FieldKind.NUMBER
        assert price.coerce("3") == 3
        assert binding("name", "Name").coerce("  Ana ") == "Ana"

    def test_field_kind_from_str(self):
        assert FieldKind.from_str("bool") == FieldKind.BOOLEAN
        with pytest.raises(ValueError, match="Invalid field kind"):
            FieldKind.from_str("blob")


class TestDefinitions:
    """Tests for definition validation."""

    def test_binding_needs_header_or_role(self):
        with pytest.raises(ValueError, match="needs a header or a role"):
            FieldBinding(key="orphan")

    def test_duplicate_field_keys(self):
        with pytest.raises(ValueError, match="Duplicate field key"):
            CollectionDef(
                name="Notes",
                table="Notes",
                header=("Id", "Title"),
                fields=(binding("title", "Title"), binding("title", "Title")),
            )

    def test_with_table(self):
        """with_table only changes the physical table."""
        moved = ARTICLES_DEF.with_table("Inventario")

        assert moved.table == "Inventario"
        assert moved.name == "Articles"
        assert moved.header == ARTICLES_DEF.header

    def test_stock_flags(self):
        assert ARTICLES_DEF.has_stock
        assert not USERS_DEF.has_stock
        assert ARTICLES_DEF.required_keys == ["product"]
