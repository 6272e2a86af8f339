"""In-process store backend.

Used by tests and single-process deployments. Every operation yields to the
event loop before touching data, so two coroutines issuing a read and a write
interleave the same way two remote clients would.
"""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING, Any

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
    matches,
    parse_timestamp,
    primary_key,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from shared.dal.feed import Subscription
    from shared.dal.store import Record, Table


class MemoryStore(Store):
    def __init__(self) -> None:
        self._tables: dict[Table, dict[tuple[str, ...], Record]] = {}
        self._feed = ChangeFeed()

    def _rows(self, table: Table) -> dict[tuple[str, ...], Record]:
        return self._tables.setdefault(table, {})

    async def get(self, table: Table, key: Mapping[str, Any]) -> Record | None:
        await asyncio.sleep(0)
        row = self._rows(table).get(primary_key(table, key))
        return copy.deepcopy(row) if row is not None else None

    async def select(self, table: Table, where: Mapping[str, Any] | None = None) -> list[Record]:
        await asyncio.sleep(0)
        return [copy.deepcopy(row) for row in self._rows(table).values() if matches(row, where)]

    async def insert(self, table: Table, record: Record) -> Record:
        await asyncio.sleep(0)
        rows = self._rows(table)
        pk = primary_key(table, record)
        if pk in rows:
            raise DuplicateKeyError(f"{table} row {pk} already exists")
        rows[pk] = copy.deepcopy(record)
        self._feed.publish(ChangeEvent(ChangeType.INSERT, table, copy.deepcopy(record)))
        return copy.deepcopy(record)

    async def update(
        self,
        table: Table,
        key: Mapping[str, Any],
        fields: Record,
        *,
        expected_version: int | None = None,
    ) -> Record:
        await asyncio.sleep(0)
        rows = self._rows(table)
        pk = primary_key(table, key)
        current = rows.get(pk)
        if current is None:
            raise NotFoundError(f"{table} row {pk} not found")

        updated = {**current, **copy.deepcopy(fields)}
        if expected_version is not None:
            version = current.get(VERSION_COLUMN, 0)
            if version != expected_version:
                raise StaleVersionError(f"{table} row {pk} is at version {version}, expected {expected_version}")
            updated[VERSION_COLUMN] = version + 1

        rows[pk] = updated
        self._feed.publish(ChangeEvent(ChangeType.UPDATE, table, copy.deepcopy(updated)))
        return copy.deepcopy(updated)

    async def delete(
        self,
        table: Table,
        where: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> int:
        await asyncio.sleep(0)
        rows = self._rows(table)
        doomed = [pk for pk, row in rows.items() if matches(row, where)]
        if expected_version is not None:
            if len(doomed) > 1:
                raise ValueError("expected_version requires a single-row delete")
            for pk in doomed:
                version = rows[pk].get(VERSION_COLUMN, 0)
                if version != expected_version:
                    raise StaleVersionError(
                        f"{table} row {pk} is at version {version}, expected {expected_version}",
                    )
        for pk in doomed:
            removed = rows.pop(pk)
            self._feed.publish(ChangeEvent(ChangeType.DELETE, table, removed))
        return len(doomed)

    async def delete_created_before(self, table: Table, cutoff: datetime) -> list[Record]:
        await asyncio.sleep(0)
        column = CREATED_AT_COLUMNS[table]
        rows = self._rows(table)
        doomed = [pk for pk, row in rows.items() if parse_timestamp(row.get(column)) < cutoff]
        removed = []
        for pk in doomed:
            row = rows.pop(pk)
            removed.append(row)
            self._feed.publish(ChangeEvent(ChangeType.DELETE, table, copy.deepcopy(row)))
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
