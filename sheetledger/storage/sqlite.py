"""
SQLite cell-grid backend for sheetledger.

This module stores every collection table as a grid of cells inside one
SQLite file. Each cell keeps its JSON-encoded value plus the normalised
text used by exact-match search, and that text column is indexed so row
lookup by identifier never scans the table.

Invariants:
    - One SQLite file holds every table
    - All writes run inside a single IMMEDIATE transaction
    - text_value always equals cell_text(value)
    - Every call is bounded by io_timeout_seconds
    - A timed-out write is rolled back before the caller sees the error

How to change safely:
    - Schema migrations must be backward compatible
    - Keep the value encoding stable (datetimes are tagged JSON objects)
    - Test with large tables before changing the index

Table schema:
    grid_tables:
        - name TEXT PRIMARY KEY
        - position INTEGER (creation order)
        - row_count INTEGER (rows including the header)
        - frozen_rows INTEGER
        - created_at INTEGER (Unix ms)

    grid_cells:
        - table_name TEXT
        - row_num INTEGER (0 = header)
        - col_num INTEGER
        - value_json TEXT
        - text_value TEXT
        - PRIMARY KEY (table_name, row_num, col_num)
        - INDEX on (table_name, col_num, text_value, row_num)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from ..errors import ConfigurationError, StorageUnavailableError
from .base import Cell, Row, cell_text

logger = logging.getLogger(__name__)

# SQLite VM instructions between cancellation checks
PROGRESS_STEPS = 200


def encode_value(value: Cell) -> str:
    """Encode a cell value as JSON, tagging dates and datetimes."""
    if isinstance(value, datetime):
        return json.dumps({"$ts": value.isoformat()})
    if isinstance(value, date):
        return json.dumps({"$date": value.isoformat()})
    return json.dumps(value)


def _decode_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 1:
        if "$ts" in obj:
            return datetime.fromisoformat(obj["$ts"])
        if "$date" in obj:
            return date.fromisoformat(obj["$date"])
    return obj


def decode_value(raw: str) -> Cell:
    """Decode a JSON cell value produced by encode_value."""
    return json.loads(raw, object_hook=_decode_hook)


class SqliteTableBackend:
    """SQLite implementation of TableBackend.

    Thread safety:
        Each call opens its own connection inside a worker thread.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> backend = SqliteTableBackend("/var/lib/sheetledger/store.db")
        >>> await backend.create_table("Articles", ["Id", "Product"])
        >>> row = await backend.append_row("Articles", [1, "Widget"])
        >>> await backend.find_row("Articles", 0, "1")
        1
    """

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        io_timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the backend.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            io_timeout_seconds: Upper bound for a single storage call
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.io_timeout_seconds = io_timeout_seconds
        self._schema_ready = False
        # Cancellation flag of the call running on the current worker thread
        self._local = threading.local()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, creating the schema on first use."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            if not self._schema_ready:
                self._create_schema(conn)
                self._schema_ready = True

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS grid_tables (
                name TEXT PRIMARY KEY,
                position INTEGER NOT NULL,
                row_count INTEGER NOT NULL DEFAULT 0,
                frozen_rows INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS grid_cells (
                table_name TEXT NOT NULL,
                row_num INTEGER NOT NULL,
                col_num INTEGER NOT NULL,
                value_json TEXT NOT NULL,
                text_value TEXT NOT NULL,
                PRIMARY KEY (table_name, row_num, col_num)
            );

            CREATE INDEX IF NOT EXISTS idx_cells_text
                ON grid_cells(table_name, col_num, text_value, row_num);
        """)

    async def _run(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run fn(conn, *args) in a worker thread with a bounded timeout.

        A call that overruns io_timeout_seconds is cancelled inside SQLite
        through a progress handler and the worker is awaited until it stops,
        so the outcome is always known: either the error is raised and any
        open transaction was rolled back, or the call finished first and its
        result is returned.

        Raises:
            StorageUnavailableError: On timeout or SQLite operational errors
        """
        cancelled = threading.Event()

        def call() -> Any:
            self._local.cancelled = cancelled
            try:
                with self._get_connection() as conn:
                    conn.set_progress_handler(
                        lambda: 1 if cancelled.is_set() else 0, PROGRESS_STEPS
                    )
                    return fn(conn, *args)
            finally:
                self._local.cancelled = None

        task = asyncio.ensure_future(asyncio.to_thread(call))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.io_timeout_seconds)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        timed_out = not done
        if timed_out:
            cancelled.set()

        try:
            return await task
        except sqlite3.OperationalError as e:
            if timed_out:
                raise StorageUnavailableError(
                    f"Storage call '{operation}' timed out after {self.io_timeout_seconds}s",
                    operation=operation,
                ) from e
            logger.warning(f"SQLite operational error during {operation}: {e}")
            raise StorageUnavailableError(
                f"Storage call '{operation}' failed: {e}",
                operation=operation,
            ) from e

    @staticmethod
    def _require_table(conn: sqlite3.Connection, name: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT row_count, frozen_rows FROM grid_tables WHERE name = ?",
            (name,),
        ).fetchone()
        if row is None:
            raise ConfigurationError(f"Table not found: {name}", table=name)
        return row

    @staticmethod
    def _insert_row(
        conn: sqlite3.Connection, name: str, row_num: int, values: Sequence[Cell]
    ) -> None:
        conn.executemany(
            """
            INSERT INTO grid_cells (table_name, row_num, col_num, value_json, text_value)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (name, row_num, col, encode_value(value), cell_text(value))
                for col, value in enumerate(values)
            ],
        )

    def _write(self, conn: sqlite3.Connection, fn: Callable[[], Any]) -> Any:
        conn.execute("BEGIN IMMEDIATE")
        try:
            result = fn()
            cancelled = getattr(self._local, "cancelled", None)
            if cancelled is not None and cancelled.is_set():
                raise sqlite3.OperationalError("interrupted")
            conn.execute("COMMIT")
            return result
        except Exception:
            # The rollback itself must not be interrupted
            conn.set_progress_handler(None, 0)
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    async def create_table(self, name: str, header: Sequence[str]) -> None:
        def op(conn: sqlite3.Connection) -> None:
            def body() -> None:
                exists = conn.execute(
                    "SELECT 1 FROM grid_tables WHERE name = ?", (name,)
                ).fetchone()
                if exists:
                    return
                position = conn.execute(
                    "SELECT COALESCE(MAX(position), -1) + 1 FROM grid_tables"
                ).fetchone()[0]
                conn.execute(
                    """
                    INSERT INTO grid_tables (name, position, row_count, frozen_rows, created_at)
                    VALUES (?, ?, ?, 1, ?)
                    """,
                    (name, position, 1 if header else 0, int(time.time() * 1000)),
                )
                if header:
                    self._insert_row(conn, name, 0, list(header))
                logger.info(f"Created table: {name}")

            self._write(conn, body)

        await self._run("create_table", op)

    async def table_exists(self, name: str) -> bool:
        def op(conn: sqlite3.Connection) -> bool:
            return (
                conn.execute("SELECT 1 FROM grid_tables WHERE name = ?", (name,)).fetchone()
                is not None
            )

        return await self._run("table_exists", op)

    async def list_tables(self) -> List[str]:
        def op(conn: sqlite3.Connection) -> List[str]:
            cursor = conn.execute("SELECT name FROM grid_tables ORDER BY position")
            return [row["name"] for row in cursor.fetchall()]

        return await self._run("list_tables", op)

    @staticmethod
    def _read_rows(
        conn: sqlite3.Connection,
        name: str,
        row_count: int,
        start: int = 0,
        stop: Optional[int] = None,
    ) -> List[Row]:
        stop = row_count if stop is None else stop
        rows: List[Row] = [[] for _ in range(max(stop - start, 0))]
        cursor = conn.execute(
            """
            SELECT row_num, col_num, value_json FROM grid_cells
            WHERE table_name = ? AND row_num >= ? AND row_num < ?
            ORDER BY row_num, col_num
            """,
            (name, start, stop),
        )
        for record in cursor.fetchall():
            row = rows[record["row_num"] - start]
            col = record["col_num"]
            if col >= len(row):
                row.extend([""] * (col + 1 - len(row)))
            row[col] = decode_value(record["value_json"])
        return rows

    async def get_header(self, name: str) -> Row:
        def op(conn: sqlite3.Connection) -> Row:
            meta = self._require_table(conn, name)
            if meta["row_count"] == 0:
                return []
            return self._read_rows(conn, name, meta["row_count"], 0, 1)[0]

        return await self._run("get_header", op)

    async def get_rows(self, name: str) -> List[Row]:
        def op(conn: sqlite3.Connection) -> List[Row]:
            meta = self._require_table(conn, name)
            return self._read_rows(conn, name, meta["row_count"])

        return await self._run("get_rows", op)

    async def get_row(self, name: str, row_number: int) -> Row:
        def op(conn: sqlite3.Connection) -> Row:
            meta = self._require_table(conn, name)
            if row_number < 0 or row_number >= meta["row_count"]:
                raise IndexError(f"Row {row_number} out of range for table {name}")
            return self._read_rows(conn, name, meta["row_count"], row_number, row_number + 1)[0]

        return await self._run("get_row", op)

    async def get_column(self, name: str, column_index: int) -> List[Cell]:
        def op(conn: sqlite3.Connection) -> List[Cell]:
            meta = self._require_table(conn, name)
            values: List[Cell] = [""] * max(meta["row_count"] - 1, 0)
            cursor = conn.execute(
                """
                SELECT row_num, value_json FROM grid_cells
                WHERE table_name = ? AND col_num = ? AND row_num >= 1
                """,
                (name, column_index),
            )
            for record in cursor.fetchall():
                values[record["row_num"] - 1] = decode_value(record["value_json"])
            return values

        return await self._run("get_column", op)

    async def row_count(self, name: str) -> int:
        def op(conn: sqlite3.Connection) -> int:
            return self._require_table(conn, name)["row_count"]

        return await self._run("row_count", op)

    async def append_row(self, name: str, values: Sequence[Cell]) -> int:
        def op(conn: sqlite3.Connection) -> int:
            def body() -> int:
                row_num = self._require_table(conn, name)["row_count"]
                self._insert_row(conn, name, row_num, list(values))
                conn.execute(
                    "UPDATE grid_tables SET row_count = row_count + 1 WHERE name = ?",
                    (name,),
                )
                return row_num

            return self._write(conn, body)

        return await self._run("append_row", op)

    async def update_row(self, name: str, row_number: int, values: Sequence[Cell]) -> None:
        def op(conn: sqlite3.Connection) -> None:
            def body() -> None:
                meta = self._require_table(conn, name)
                if row_number < 1 or row_number >= meta["row_count"]:
                    raise IndexError(f"Row {row_number} out of range for table {name}")
                conn.execute(
                    "DELETE FROM grid_cells WHERE table_name = ? AND row_num = ?",
                    (name, row_number),
                )
                self._insert_row(conn, name, row_number, list(values))

            self._write(conn, body)

        await self._run("update_row", op)

    async def update_cells(
        self, name: str, row_number: int, cells: Mapping[int, Cell]
    ) -> None:
        def op(conn: sqlite3.Connection) -> None:
            def body() -> None:
                meta = self._require_table(conn, name)
                if row_number < 1 or row_number >= meta["row_count"]:
                    raise IndexError(f"Row {row_number} out of range for table {name}")
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO grid_cells
                    (table_name, row_num, col_num, value_json, text_value)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (name, row_number, col, encode_value(value), cell_text(value))
                        for col, value in cells.items()
                    ],
                )

            self._write(conn, body)

        await self._run("update_cells", op)

    async def delete_rows(self, name: str, row_numbers: Sequence[int]) -> int:
        def op(conn: sqlite3.Connection) -> int:
            def body() -> int:
                row_count = self._require_table(conn, name)["row_count"]
                removed = 0
                # Highest first so earlier row numbers stay valid
                for row_number in sorted(set(row_numbers), reverse=True):
                    if not 1 <= row_number < row_count - removed:
                        continue
                    conn.execute(
                        "DELETE FROM grid_cells WHERE table_name = ? AND row_num = ?",
                        (name, row_number),
                    )
                    # Two-step shift keeps the primary key unique mid-update
                    conn.execute(
                        """
                        UPDATE grid_cells SET row_num = -(row_num - 1)
                        WHERE table_name = ? AND row_num > ?
                        """,
                        (name, row_number),
                    )
                    conn.execute(
                        "UPDATE grid_cells SET row_num = -row_num WHERE table_name = ? AND row_num < 0",
                        (name,),
                    )
                    removed += 1
                conn.execute(
                    "UPDATE grid_tables SET row_count = row_count - ? WHERE name = ?",
                    (removed, name),
                )
                return removed

            return self._write(conn, body)

        return await self._run("delete_rows", op)

    async def find_row(self, name: str, column_index: int, text: str) -> Optional[int]:
        def op(conn: sqlite3.Connection) -> Optional[int]:
            frozen = self._require_table(conn, name)["frozen_rows"]
            row = conn.execute(
                """
                SELECT MIN(row_num) FROM grid_cells
                WHERE table_name = ? AND col_num = ? AND text_value = ? AND row_num >= ?
                """,
                (name, column_index, text, max(frozen, 1)),
            ).fetchone()
            return row[0] if row and row[0] is not None else None

        return await self._run("find_row", op)

    async def frozen_rows(self, name: str) -> int:
        def op(conn: sqlite3.Connection) -> int:
            return self._require_table(conn, name)["frozen_rows"]

        return await self._run("frozen_rows", op)

    async def set_frozen_rows(self, name: str, count: int) -> None:
        """Freeze the top `count` rows of a table (header included)."""

        def op(conn: sqlite3.Connection) -> None:
            self._require_table(conn, name)
            conn.execute(
                "UPDATE grid_tables SET frozen_rows = ? WHERE name = ?",
                (count, name),
            )

        await self._run("set_frozen_rows", op)

    async def close(self) -> None:
        """Connections are per call; nothing to release."""
        logger.debug("SqliteTableBackend closed", extra={"path": str(self.path)})

    def get_db_path(self) -> Path:
        return self.path
