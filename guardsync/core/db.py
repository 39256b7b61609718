"""
SQLite plumbing shared by the outbox and the cache storage.
One connection per operation; callers run these helpers off the event loop.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, List

from .config import SQLITE_TIMEOUT_SEC, ensure_db_directory

# Outbox collections, one table per resource kind
COLLECTIONS = {
    "violation_report": "pending_reports",
    "emergency_alert": "pending_alerts",
    "generic": "offline_data",
}


class StorageUnavailable(Exception):
    """The storage engine cannot be opened or written (quota, read-only file, disabled engine)."""


@contextmanager
def get_db(db_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection, mapping engine failures to StorageUnavailable."""
    try:
        if db_path != ":memory:":
            ensure_db_directory(db_path)
        conn = sqlite3.connect(db_path, timeout=SQLITE_TIMEOUT_SEC)
    except (sqlite3.Error, OSError) as e:
        raise StorageUnavailable(f"Cannot open database {db_path}: {e}") from e

    try:
        yield conn
    except sqlite3.Error as e:
        conn.rollback()
        raise StorageUnavailable(f"Database error on {db_path}: {e}") from e
    finally:
        conn.close()


def init_outbox_schema(db_path: str):
    """Create the outbox sequence and collection tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Shared id sequence so ids are monotonic and unique across collections
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS outbox_sequence (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL
            )
        ''')

        for table in COLLECTIONS.values():
            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS {table} (
                    id INTEGER PRIMARY KEY,
                    client_ref TEXT NOT NULL,
                    resource_kind TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    attempt_count INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    last_attempt_at TEXT
                )
            ''')

        conn.commit()


def init_cache_schema(db_path: str):
    """Create the cache directory and entry tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS caches (
                name TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS cache_entries (
                cache_name TEXT NOT NULL,
                key TEXT NOT NULL,
                status INTEGER NOT NULL,
                headers TEXT NOT NULL,
                body BLOB NOT NULL,
                cached_at TEXT NOT NULL,
                cache_class TEXT NOT NULL,
                PRIMARY KEY (cache_name, key)
            )
        ''')

        conn.commit()


def health_check(db_path: str, required_tables: List[str]) -> bool:
    """Check that a database opens and holds the required tables."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return all(table in table_names for table in required_tables)
    except StorageUnavailable:
        return False
