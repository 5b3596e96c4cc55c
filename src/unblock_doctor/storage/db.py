"""SQLite database connection and initialization.

Each thread gets its own connection via threading.local; connections
are never shared across threads. Writes go through ``transaction()``,
which commits on success and rolls back on any exception.

DB location: ./data/unblock_doctor.db unless overridden by set_db_path().
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from unblock_doctor.storage.models import ALL_SCHEMAS

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("./data/unblock_doctor.db")

_local = threading.local()

_db_path: Path = _DEFAULT_DB_PATH


def set_db_path(path: Path | str) -> None:
    """Point the storage layer at another database file.

    Closes this thread's open connection, if any, so the next get_db()
    opens the new file.
    """
    global _db_path
    close_db()
    _db_path = Path(path)


def get_db_path() -> Path:
    return _db_path


def init_db() -> None:
    """Create the database directory, file, tables and indexes. Idempotent."""
    _db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = _connect(_db_path)
    try:
        for ddl in ALL_SCHEMAS:
            conn.execute(ddl)
        conn.commit()
    finally:
        conn.close()
    logger.debug("Database ready at %s", _db_path)


def get_db() -> sqlite3.Connection:
    """Thread-local connection with sqlite3.Row rows."""
    conn = getattr(_local, "connection", None)
    if conn is None:
        conn = _connect(_db_path)
        _local.connection = conn
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """Yield the thread's connection; commit on exit, roll back on error."""
    conn = get_db()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def close_db() -> None:
    conn = getattr(_local, "connection", None)
    if conn is not None:
        conn.close()
        _local.connection = None


def _connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn
