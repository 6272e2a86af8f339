"""SQLite database connection and schema management."""

import os
import sqlite3
from pathlib import Path

import structlog

from shared.dal.store import Table

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

MEMORY_PATH = ":memory:"

# Every logical table has the same physical shape: the joined primary key,
# the row's creation timestamp for retention sweeps, and the JSON document.
_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS {table} (
    pk TEXT PRIMARY KEY,
    created_at TEXT,
    data TEXT NOT NULL
);
"""

_INDEX_SQL = """\
CREATE INDEX IF NOT EXISTS idx_room_character_pools_room_id
    ON room_character_pools (json_extract(data, '$.room_id'));

CREATE INDEX IF NOT EXISTS idx_rooms_created_at
    ON rooms (created_at);
"""


def _schema_sql() -> str:
    return "".join(_TABLE_SQL.format(table=table.value) for table in Table) + _INDEX_SQL


class Database:
    """SQLite database wrapper with schema management."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        if self._path != MEMORY_PATH:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        if self._path != MEMORY_PATH:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_schema_sql())

        self._harden_permissions()
        logger.info("database connected", path=self._path)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _harden_permissions(self) -> None:
        """Set owner-only permissions on the DB file and its WAL/SHM siblings (best effort)."""
        if os.name != "posix" or self._path == MEMORY_PATH:  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
