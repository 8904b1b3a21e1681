"""
Output Sinks - Append-Only Tabular Stores

A sink receives an ordered header that only ever grows at its tail, and
batches of rows aligned to the header width at the time they are written.
Rows written before a header extension are never rewritten; they read back
padded with empty cells for the newer columns.

Sinks:
- MemorySink: in-process table, for continuous runs and tests
- SQLiteSink: SQLite file, one transaction per appended batch
"""

import logging
import sqlite3
from collections.abc import Sequence
from typing import Protocol

from clickdown.utils.db import (
    HEADER_TABLE,
    ROWS_TABLE,
    data_column,
    drop_schema,
    get_conn,
    init_schema,
)

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    def read_header(self) -> list[str]: ...

    def reset(self, header: Sequence[str]) -> None: ...

    def extend_header(self, columns: Sequence[str]) -> None: ...

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None: ...

    def close(self) -> None: ...


def _check_width(header: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    for row in rows:
        if len(row) > len(header):
            raise ValueError(f"Row has {len(row)} cells but the header has {len(header)} columns")


class MemorySink:
    """Keeps header and rows in memory."""

    def __init__(self) -> None:
        self.header: list[str] = []
        self.rows: list[list[str]] = []
        self.header_extensions: list[list[str]] = []

    def read_header(self) -> list[str]:
        return list(self.header)

    def reset(self, header: Sequence[str]) -> None:
        self.header = list(header)
        self.rows = []
        self.header_extensions = []

    def extend_header(self, columns: Sequence[str]) -> None:
        if columns:
            self.header.extend(columns)
            self.header_extensions.append(list(columns))

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        _check_width(self.header, rows)
        self.rows.extend(list(row) for row in rows)

    def table(self) -> list[list[str]]:
        """All rows padded to the current header width."""
        width = len(self.header)
        return [row + [""] * (width - len(row)) for row in self.rows]

    def records(self) -> list[dict[str, str]]:
        return [dict(zip(self.header, row)) for row in self.table()]

    def close(self) -> None:
        pass


class SQLiteSink:
    """
    Stores rows in SQLite.

    Handles:
    - Header persistence across process restarts (resumed runs)
    - Header growth through ALTER TABLE ADD COLUMN
    - Atomic append of each batch
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.conn: sqlite3.Connection = get_conn(path)
        init_schema(self.conn)

    def read_header(self) -> list[str]:
        rows = self.conn.execute(f"SELECT name FROM {HEADER_TABLE} ORDER BY position").fetchall()
        return [row["name"] for row in rows]

    def reset(self, header: Sequence[str]) -> None:
        drop_schema(self.conn)
        init_schema(self.conn)
        self.extend_header(header)
        logger.info("Output table reset", extra={"path": self.path, "columns": len(header)})

    def extend_header(self, columns: Sequence[str]) -> None:
        if not columns:
            return
        start = len(self.read_header())
        with self.conn:
            for offset, name in enumerate(columns):
                position = start + offset
                self.conn.execute(
                    f"ALTER TABLE {ROWS_TABLE} ADD COLUMN {data_column(position)} TEXT"
                )
                self.conn.execute(
                    f"INSERT INTO {HEADER_TABLE} (position, name) VALUES (?, ?)",
                    (position, name),
                )
        logger.info("Output header extended", extra={"new_columns": list(columns)})

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        if not rows:
            return
        header = self.read_header()
        _check_width(header, rows)
        with self.conn:
            for row in rows:
                columns = ", ".join(data_column(i) for i in range(len(row)))
                placeholders = ", ".join("?" for _ in row)
                self.conn.execute(
                    f"INSERT INTO {ROWS_TABLE} ({columns}) VALUES ({placeholders})",
                    tuple(row),
                )

    def table(self) -> list[list[str]]:
        """All rows padded to the current header width, in insertion order."""
        width = len(self.read_header())
        if width == 0:
            return []
        columns = ", ".join(data_column(i) for i in range(width))
        rows = self.conn.execute(f"SELECT {columns} FROM {ROWS_TABLE} ORDER BY row_id").fetchall()
        return [[cell if cell is not None else "" for cell in row] for row in rows]

    def close(self) -> None:
        self.conn.close()
