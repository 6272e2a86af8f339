"""Tests for Database connection and schema."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from shared.dal.store import Table
from shared.db.connection import MEMORY_PATH, Database

if TYPE_CHECKING:
    from pathlib import Path


def _table_names(db: Database) -> set[str]:
    rows = db.connection.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {row[0] for row in rows}


class TestConnect:
    def test_creates_schema_and_connects(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()

        assert _table_names(db) >= {t.value for t in Table}
        assert db.is_connected is True
        db.close()

    def test_uses_wal_journal(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        mode = db.connection.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"
        db.close()

    def test_in_memory_database(self) -> None:
        db = Database(MEMORY_PATH)
        db.connect()
        assert _table_names(db) >= {t.value for t in Table}
        db.close()

    def test_reconnect_after_close(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.close()
        db.connect()

        assert _table_names(db) >= {t.value for t in Table}
        db.close()

    def test_connection_raises_when_disconnected(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_connection_raises_after_close(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.close()
        assert db.is_connected is False
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "nested" / "dir" / "test.db")
        db.connect()
        assert db.connection is not None
        assert db.path == str(tmp_path / "nested" / "dir" / "test.db")
        db.close()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
class TestPermissions:
    def test_db_file_has_restricted_permissions(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        db = Database(db_path)
        db.connect()

        mode = db_path.stat().st_mode & 0o777
        assert mode == 0o600
        db.close()

    def test_harden_permissions_warns_on_failure(self, tmp_path: Path) -> None:
        """Permission hardening logs a warning on failure instead of raising."""
        db = Database(tmp_path / "test.db")
        with patch("pathlib.Path.chmod", side_effect=OSError("permission denied")):
            db.connect()
        assert db.connection is not None
        db.close()
