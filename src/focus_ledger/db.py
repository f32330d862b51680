"""SQLite-backed key-value blob store."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

LEDGER_KEY = "time-tracker-data"
SESSION_TIME_KEY = "app-session-times"
DISTRACTIONS_KEY = "app-distractions"
APP_CATEGORIES_KEY = "app-categories"


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS blobs (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )


def read_blob(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM blobs WHERE key = ?", (key,)).fetchone()
    return row["value"] if row is not None else None


def write_blob(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Replace the whole value stored under ``key``."""
    conn.execute(
        """
        INSERT INTO blobs (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, value, datetime.now().strftime(DATETIME_FMT)),
    )


def delete_blob(conn: sqlite3.Connection, key: str) -> None:
    conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
