"""SQLite-backed store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from datetime import UTC
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.feed import ChangeFeed
from shared.dal.store import (
    ALL_CHANGES,
    CREATED_AT_COLUMNS,
    VERSION_COLUMN,
    ChangeEvent,
    ChangeType,
    DuplicateKeyError,
    NotFoundError,
    StaleVersionError,
    Store,
    StoreUnavailableError,
    parse_timestamp,
    primary_key,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from datetime import datetime

    from shared.dal.feed import Subscription
    from shared.dal.store import Record, Table
    from shared.db.connection import Database

logger = structlog.get_logger()

_KEY_SEPARATOR = "\x1f"


def _pk(table: Table, record: Mapping[str, Any]) -> str:
    return _KEY_SEPARATOR.join(primary_key(table, record))


def _created_at(table: Table, record: Mapping[str, Any]) -> str:
    """Normalize the sweep column so that string order equals time order."""
    stamp = parse_timestamp(record.get(CREATED_AT_COLUMNS[table]))
    return stamp.astimezone(UTC).isoformat(timespec="microseconds")


def _where_sql(where: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
    if not where:
        return "", []
    clauses = []
    params: list[Any] = []
    for column, value in where.items():
        if not column.isidentifier():
            raise ValueError(f"Invalid filter column {column!r}")
        clauses.append(f"json_extract(data, '$.{column}') = ?")
        params.append(value)
    return " WHERE " + " AND ".join(clauses), params


class SqliteStore(Store):
    """SQLite implementation of Store.

    Rows are JSON documents keyed by their joined primary key. Writes run in
    ``BEGIN IMMEDIATE`` transactions under an asyncio lock, so version checks
    hold both within this process and against other processes sharing the
    database file. Change events are published after commit.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()
        self._feed = ChangeFeed()

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(str(exc)) from exc
        except (sqlite3.Error, RuntimeError) as exc:
            raise StoreUnavailableError(str(exc)) from exc

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._translate_errors():
            conn = self._db.connection
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    async def get(self, table: Table, key: Mapping[str, Any]) -> Record | None:
        with self._translate_errors():
            row = self._db.connection.execute(
                f"SELECT data FROM {table} WHERE pk = ?",  # noqa: S608
                (_pk(table, key),),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def select(self, table: Table, where: Mapping[str, Any] | None = None) -> list[Record]:
        clause, params = _where_sql(where)
        with self._translate_errors():
            rows = self._db.connection.execute(
                f"SELECT data FROM {table}{clause} ORDER BY rowid",  # noqa: S608
                params,
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    async def insert(self, table: Table, record: Record) -> Record:
        async with self._lock:
            with self._transaction() as conn:
                conn.execute(
                    f"INSERT INTO {table} (pk, created_at, data) VALUES (?, ?, ?)",  # noqa: S608
                    (_pk(table, record), _created_at(table, record), json.dumps(record)),
                )
        self._feed.publish(ChangeEvent(ChangeType.INSERT, table, record))
        return dict(record)

    async def update(
        self,
        table: Table,
        key: Mapping[str, Any],
        fields: Record,
        *,
        expected_version: int | None = None,
    ) -> Record:
        pk = _pk(table, key)
        async with self._lock:
            with self._transaction() as conn:
                row = conn.execute(f"SELECT data FROM {table} WHERE pk = ?", (pk,)).fetchone()  # noqa: S608
                if row is None:
                    raise NotFoundError(f"{table} row {pk!r} not found")
                current = json.loads(row[0])
                updated = {**current, **fields}
                if expected_version is not None:
                    version = current.get(VERSION_COLUMN, 0)
                    if version != expected_version:
                        raise StaleVersionError(
                            f"{table} row {pk!r} is at version {version}, expected {expected_version}",
                        )
                    updated[VERSION_COLUMN] = version + 1
                conn.execute(
                    f"UPDATE {table} SET data = ? WHERE pk = ?",  # noqa: S608
                    (json.dumps(updated), pk),
                )
        self._feed.publish(ChangeEvent(ChangeType.UPDATE, table, updated))
        return updated

    async def delete(
        self,
        table: Table,
        where: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> int:
        clause, params = _where_sql(where)
        async with self._lock:
            with self._transaction() as conn:
                rows = conn.execute(f"SELECT pk, data FROM {table}{clause}", params).fetchall()  # noqa: S608
                removed = [json.loads(data) for _, data in rows]
                if expected_version is not None:
                    if len(removed) > 1:
                        raise ValueError("expected_version requires a single-row delete")
                    for record in removed:
                        version = record.get(VERSION_COLUMN, 0)
                        if version != expected_version:
                            raise StaleVersionError(
                                f"{table} row is at version {version}, expected {expected_version}",
                            )
                conn.executemany(f"DELETE FROM {table} WHERE pk = ?", [(pk,) for pk, _ in rows])  # noqa: S608
        for record in removed:
            self._feed.publish(ChangeEvent(ChangeType.DELETE, table, record))
        return len(removed)

    async def delete_created_before(self, table: Table, cutoff: datetime) -> list[Record]:
        threshold = cutoff.astimezone(UTC).isoformat(timespec="microseconds")
        async with self._lock:
            with self._transaction() as conn:
                rows = conn.execute(
                    f"SELECT pk, data FROM {table} WHERE created_at < ?",  # noqa: S608
                    (threshold,),
                ).fetchall()
                conn.executemany(f"DELETE FROM {table} WHERE pk = ?", [(pk,) for pk, _ in rows])  # noqa: S608
        removed = [json.loads(data) for _, data in rows]
        for record in removed:
            self._feed.publish(ChangeEvent(ChangeType.DELETE, table, record))
        return removed

    def subscribe(
        self,
        table: Table,
        where: Mapping[str, Any] | None = None,
        events: frozenset[ChangeType] = ALL_CHANGES,
    ) -> Subscription:
        return self._feed.subscribe(table, where, events)

    async def close(self) -> None:
        self._feed.close_all()
