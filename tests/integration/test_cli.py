"""
Integration tests for the application wiring and the operator CLI.

Tests cover:
- Application lifecycle
- Logging setup
- CLI commands against a SQLite store
- Exit codes
"""

import json
import logging
from pathlib import Path

import json_log_formatter
import pytest

from sheetledger.config import AppConfig, ObservabilityConfig, StorageConfig, StoreBackend, TablesConfig
from sheetledger.main import Application, setup_logging
from sheetledger.tools.admin_cli import build_parser, parse_assignments, run


class TestApplication:
    """Tests for Application."""

    @pytest.mark.asyncio
    async def test_lifecycle(self):
        config = AppConfig(storage=StorageConfig(backend=StoreBackend.MEMORY))

        async with Application(config) as app:
            created = await app.init_tables()
            result = await app.service.create("Articles", {"product": "Widget", "received": 1})

            assert len(created) == 7
            assert app.registry.frozen
            assert result["success"] is True

    @pytest.mark.asyncio
    async def test_init_tables_starts_on_demand(self):
        app = Application(AppConfig(storage=StorageConfig(backend=StoreBackend.MEMORY)))

        created = await app.init_tables()

        assert len(created) == 7
        assert app.service is not None
        assert await app.init_tables() == []
        await app.stop()

    @pytest.mark.asyncio
    async def test_configured_table_names(self):
        config = AppConfig(
            storage=StorageConfig(backend=StoreBackend.MEMORY),
            tables=TablesConfig(articles="Inventario"),
        )

        async with Application(config) as app:
            await app.init_tables()

            assert await app.backend.table_exists("Inventario")
            assert (await app.service.list_active("Articles"))["count"] == 0

    def test_setup_logging(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(AppConfig(observability=ObservabilityConfig(log_level="DEBUG")))
            assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
            assert root.level == logging.DEBUG

            setup_logging(AppConfig(observability=ObservabilityConfig(log_format="text")))
            assert len(root.handlers) == 1
            assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)


class TestAdminCli:
    """Tests for the sheetledger command."""

    @pytest.fixture
    def config(self, data_dir):
        return AppConfig(storage=StorageConfig(path=str(Path(data_dir) / "cli.db"), wal_mode=False))

    def invoke(self, capsys, config, *argv):
        code = run(list(argv), config)
        return code, json.loads(capsys.readouterr().out)

    def test_stock_workflow(self, capsys, config):
        code, output = self.invoke(capsys, config, "init")
        assert code == 0
        assert "History" in output["created"]
        assert output["fingerprint"].startswith("sha256:")

        code, output = self.invoke(
            capsys, config, "--actor", "alice", "add", "Articles", "product=Widget", "received=10"
        )
        assert code == 0
        assert output["id"] == 1

        code, output = self.invoke(capsys, config, "withdraw", "Articles", "1", "4")
        assert code == 0
        assert output["available"] == 6

        code, output = self.invoke(capsys, config, "withdraw", "Articles", "1", "100")
        assert code == 1
        assert output["error_code"] == "INSUFFICIENT_STOCK"

        code, output = self.invoke(capsys, config, "history", "--subject", "1", "--origin", "Articles")
        assert output["count"] == 2
        assert output["entries"][0]["actor"] == "alice"
        assert output["entries"][1]["actor"] == "System"

    def test_listing_and_deactivation(self, capsys, config):
        self.invoke(capsys, config, "init")
        self.invoke(capsys, config, "add", "Food", "product=Rice", "received=5")

        assert self.invoke(capsys, config, "list", "Food")[1]["count"] == 1
        code, output = self.invoke(capsys, config, "deactivate", "Food", "1", "7")
        assert code == 0
        assert output["not_found"] == ["7"]
        assert self.invoke(capsys, config, "list", "Food")[1]["count"] == 0
        assert self.invoke(capsys, config, "list", "Food", "--all")[1]["count"] == 1

        code, output = self.invoke(capsys, config, "show", "Food", "1")
        assert output["record"]["Status"] == "Deactivated"

    def test_update_and_schema(self, capsys, config):
        self.invoke(capsys, config, "init")
        self.invoke(capsys, config, "add", "Articles", "product=Widget")

        code, output = self.invoke(capsys, config, "update", "Articles", "1", "received_delta=3")
        assert code == 0
        assert output["receipt"]["quantity_after"] == 3

        code, output = self.invoke(capsys, config, "schema", "Articles")
        assert output["columns"][0] == "Id"

    def test_missing_table_fails(self, capsys, config):
        code, output = self.invoke(capsys, config, "list", "Articles")

        assert code == 1
        assert output["error_code"] == "CONFIGURATION_ERROR"

    def test_pending(self, capsys, config):
        self.invoke(capsys, config, "init")

        code, output = self.invoke(capsys, config, "pending", "alice@example.com")

        assert code == 0
        assert output["count"] == 0

    def test_usage_errors(self):
        with pytest.raises(SystemExit) as exc_info:
            run(["withdraw", "Articles"], AppConfig())
        assert exc_info.value.code == 2

        parser = build_parser()
        assert parse_assignments(parser, ["product=Widget", " received =5"]) == {
            "product": "Widget",
            "received": "5",
        }
        with pytest.raises(SystemExit):
            parse_assignments(parser, ["oops"])
