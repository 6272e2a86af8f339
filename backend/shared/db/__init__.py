"""SQLite database layer: connection management and the store backend."""

from shared.db.connection import Database
from shared.db.store import SqliteStore

__all__ = [
    "Database",
    "SqliteStore",
]
