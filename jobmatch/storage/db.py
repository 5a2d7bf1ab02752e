"""
Database connection management.

Provides the SQLite storage handle shared by the parse cache and the job
store.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..core.errors import StorageError

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS parse_cache (
        cache_key TEXT PRIMARY KEY,
        value_json TEXT NOT NULL,
        response_json TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_parse_cache_created_at ON parse_cache (created_at)",
    """
    CREATE TABLE IF NOT EXISTS job_record (
        job_id TEXT PRIMARY KEY,
        title TEXT,
        company TEXT,
        company_size TEXT,
        industry TEXT,
        city TEXT,
        district TEXT,
        salary TEXT,
        experience TEXT,
        education TEXT,
        description TEXT,
        skill_tags TEXT NOT NULL DEFAULT '[]',
        url TEXT,
        published_at TEXT,
        first_seen_at TEXT NOT NULL,
        last_updated_at TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'ACTIVE'
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_job_record_first_seen_at ON job_record (first_seen_at)",
)


def get_connection(db_path: str) -> sqlite3.Connection:
    """Create a SQLite connection suited to multi-process access.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with a busy timeout and WAL journaling
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class Storage:
    """Explicitly constructed handle to the durable store.

    Each operation opens its own short-lived connection, so independent
    processes can share one database file. Every sqlite3 failure surfaces
    as StorageError.
    """

    def __init__(self, db_path: str):
        """Create the handle and ensure the schema exists.

        Args:
            db_path: Path to SQLite database file

        Raises:
            ValueError: If db_path is empty or names an in-memory database
            StorageError: If the database cannot be opened or initialized
        """
        if not db_path or not str(db_path).strip():
            raise ValueError("db_path is required and cannot be empty")
        if str(db_path).strip() == ":memory:":
            # every operation opens a new connection, which would see an empty database
            raise ValueError("db_path must be a file; in-memory databases are not supported")
        self.db_path = str(db_path)
        self.initialize_schema()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction.

        Commits on success, rolls back on error, always closes.

        Raises:
            StorageError: Wrapping any sqlite3.Error
        """
        try:
            conn = get_connection(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}", e)
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error("Storage operation failed on %s: %s", self.db_path, e)
            raise StorageError(f"Storage operation failed: {e}", e)
        finally:
            conn.close()

    def initialize_schema(self) -> None:
        """Create the cache and job tables if they don't exist."""
        with self.connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
        logger.debug("Storage initialized: %s", self.db_path)
