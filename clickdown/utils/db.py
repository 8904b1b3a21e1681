"""
Database utilities for SQLite operations.

Provides connection management and schema initialization for the SQLite row
sink. The header lives in its own table so column names are free-form (SQLite
column names are case-insensitive, custom-field names are not); data cells are
stored in positional columns c0, c1, ... added as the header grows.
"""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

HEADER_TABLE = "sink_columns"
ROWS_TABLE = "task_rows"


def get_conn(path: str) -> sqlite3.Connection:
    """
    Get SQLite database connection with dict-friendly row factory.

    Args:
        path: Database file path, or ":memory:"

    Returns:
        SQLite connection with row_factory set to sqlite3.Row

    Raises:
        sqlite3.Error: If connection fails
    """
    if path != ":memory:":
        # Ensure database directory exists
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    return conn


def data_column(index: int) -> str:
    return f"c{index}"


def init_schema(conn: sqlite3.Connection) -> None:
    """
    Initialize database schema by creating required tables if they don't exist.

    Creates:
    - sink_columns: ordered header names (position, name)
    - task_rows: one row per task, data columns added on demand

    Raises:
        sqlite3.Error: If schema creation fails
    """
    with conn:
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {HEADER_TABLE} (
                position INTEGER PRIMARY KEY,
                name TEXT NOT NULL
            )
        """)

        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {ROWS_TABLE} (
                row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                inserted_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)

    logger.info("DB schema ready")


def drop_schema(conn: sqlite3.Connection) -> None:
    with conn:
        conn.execute(f"DROP TABLE IF EXISTS {ROWS_TABLE}")
        conn.execute(f"DROP TABLE IF EXISTS {HEADER_TABLE}")
