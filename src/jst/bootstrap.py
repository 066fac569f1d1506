from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .schema import SCHEMA_SQL, SCHEMA_VERSION

DEFAULT_DB_PATH = Path("runtime/state/journal.db")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: str | Path = DEFAULT_DB_PATH, *, busy_timeout_seconds: float = 10.0) -> sqlite3.Connection:
    path = Path(db_path)
    if path != Path(":memory:"):
        path.parent.mkdir(parents=True, exist_ok=True)

    # autocommit mode: transactions are opened explicitly by unit_of_work()
    conn = sqlite3.connect(
        str(path),
        timeout=busy_timeout_seconds,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def run_migrations(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    with transaction(conn):
        row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
        current = row["version"] if row and row["version"] is not None else 0
        if current < SCHEMA_VERSION:
            conn.execute(
                "INSERT OR REPLACE INTO schema_version(version, applied_at) VALUES (?, ?)",
                (SCHEMA_VERSION, _utc_now_iso()),
            )


def initialize_database(db_path: str | Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    conn = get_connection(db_path)
    run_migrations(conn)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """BEGIN IMMEDIATE ... COMMIT, or ROLLBACK if the block raises.

    IMMEDIATE takes the database write lock on entry, so every read made inside
    the block is already protected against a concurrent writer.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


class JournalStore:
    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH, *, busy_timeout_seconds: float = 10.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_seconds = busy_timeout_seconds
        conn = self.connect()
        try:
            run_migrations(conn)
        finally:
            conn.close()

    def connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path, busy_timeout_seconds=self.busy_timeout_seconds)

    @contextmanager
    def unit_of_work(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            with transaction(conn):
                yield conn
        finally:
            conn.close()
