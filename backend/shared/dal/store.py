"""Abstract interface for the backing row store.

The store is the only coordination point between independent clients: it
offers atomic per-row writes, optional optimistic version checks, and a
row-level change feed filtered by column values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shared.dal.feed import Subscription

type Record = dict[str, Any]


class Table(StrEnum):
    ROOMS = "rooms"
    POOL = "room_character_pools"
    CHARACTERS = "characters"
    LEADERBOARD = "leaderboard"


PRIMARY_KEYS: dict[Table, tuple[str, ...]] = {
    Table.ROOMS: ("id",),
    Table.POOL: ("room_id", "character_id"),
    Table.CHARACTERS: ("id",),
    Table.LEADERBOARD: ("user_id",),
}

# Column each table is swept by in delete_created_before().
CREATED_AT_COLUMNS: dict[Table, str] = {
    Table.ROOMS: "created_at",
    Table.POOL: "added_at",
    Table.CHARACTERS: "created_at",
    Table.LEADERBOARD: "updated_at",
}

VERSION_COLUMN = "version"


class ChangeType(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


ALL_CHANGES = frozenset(ChangeType)


@dataclass(frozen=True)
class ChangeEvent:
    """A committed row change. For deletes, ``record`` is the row as it was."""

    type: ChangeType
    table: Table
    record: Record


class StoreError(Exception):
    """Base class for every failure raised by a store backend."""


class DuplicateKeyError(StoreError):
    pass


class NotFoundError(StoreError):
    pass


class StaleVersionError(StoreError):
    """The row changed since it was read; the caller should re-read and retry."""


class StoreUnavailableError(StoreError):
    """Transport or backend failure unrelated to the data itself."""


def primary_key(table: Table, record: Mapping[str, Any]) -> tuple[str, ...]:
    """Extract the primary key values of ``record`` for ``table``."""
    try:
        return tuple(str(record[column]) for column in PRIMARY_KEYS[table])
    except KeyError as exc:
        raise ValueError(f"Record for {table} is missing key column {exc.args[0]!r}") from exc


def parse_timestamp(value: object) -> datetime:
    """Parse a stored ISO timestamp. Missing values sort as the oldest possible."""
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.min.replace(tzinfo=UTC)
    return datetime.fromisoformat(str(value))


def matches(record: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    """Equality filter used by select, delete and subscriptions."""
    if not where:
        return True
    return all(record.get(column) == value for column, value in where.items())


class Store(ABC):
    """Abstract row store.

    Implementations must apply each write atomically, publish a ChangeEvent
    for it after commit, and raise StoreUnavailableError for transport
    problems.
    """

    @abstractmethod
    async def get(self, table: Table, key: Mapping[str, Any]) -> Record | None: ...

    @abstractmethod
    async def select(self, table: Table, where: Mapping[str, Any] | None = None) -> list[Record]: ...

    @abstractmethod
    async def insert(self, table: Table, record: Record) -> Record: ...

    @abstractmethod
    async def update(
        self,
        table: Table,
        key: Mapping[str, Any],
        fields: Record,
        *,
        expected_version: int | None = None,
    ) -> Record:
        """Merge ``fields`` into the row and return the new row.

        When ``expected_version`` is given the write only applies if the row's
        version still equals it, and the stored version is incremented.
        """

    @abstractmethod
    async def delete(
        self,
        table: Table,
        where: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> int:
        """Delete every matching row and return how many were removed.

        Deleting nothing is not an error. ``expected_version`` applies only to
        single-row deletes and raises StaleVersionError on mismatch.
        """

    @abstractmethod
    async def delete_created_before(self, table: Table, cutoff: datetime) -> list[Record]: ...

    @abstractmethod
    def subscribe(
        self,
        table: Table,
        where: Mapping[str, Any] | None = None,
        events: frozenset[ChangeType] = ALL_CHANGES,
    ) -> Subscription: ...

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. Default is a no-op."""
