"""Typed access to room records with optimistic-concurrency retries."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.dal.models import Room
from shared.dal.store import NotFoundError, StaleVersionError, Table
from shared.rejections import RejectedError, Rejection

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from shared.dal.store import Store

logger = structlog.get_logger()

DEFAULT_MAX_WRITE_ATTEMPTS = 5


class RoomRepository:
    """Wraps the store's ``rooms`` table.

    Every mutation of an existing room goes through ``run()``: the operation
    receives a fresh snapshot and writes it back with ``save()`` or
    ``remove()``, both of which are conditional on the snapshot's version.
    If another client wrote in between, the operation is replayed against the
    newer snapshot instead of silently overwriting it.
    """

    def __init__(self, store: Store, max_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts

    @property
    def store(self) -> Store:
        return self._store

    async def get(self, code: str) -> Room | None:
        record = await self._store.get(Table.ROOMS, {"id": code})
        if record is None:
            return None
        return Room.model_validate(record)

    async def insert(self, room: Room) -> Room:
        """Insert a new room. Raises DuplicateKeyError if the code is taken."""
        record = await self._store.insert(Table.ROOMS, room.to_record())
        return Room.model_validate(record)

    async def save(self, room: Room) -> Room:
        """Write ``room`` back if nobody else has written since it was read."""
        fields = room.to_record()
        del fields["id"], fields["version"]
        record = await self._store.update(
            Table.ROOMS,
            {"id": room.id},
            fields,
            expected_version=room.version,
        )
        return Room.model_validate(record)

    async def remove(self, room: Room) -> None:
        """Delete ``room`` if unchanged since read, together with its pool."""
        await self._store.delete(Table.ROOMS, {"id": room.id}, expected_version=room.version)
        await self._store.delete(Table.POOL, {"room_id": room.id})

    async def delete(self, code: str) -> bool:
        """Unconditionally delete a room and its pool. Returns whether a room existed."""
        removed = await self._store.delete(Table.ROOMS, {"id": code})
        await self._store.delete(Table.POOL, {"room_id": code})
        return removed > 0

    async def delete_created_before(self, cutoff: datetime) -> list[str]:
        """Delete rooms created before ``cutoff`` and their pools. Returns the deleted codes.

        Pool rows added before ``cutoff`` go too: a room is always older than
        its pool rows, so such a row belongs to a swept room or to none.
        """
        removed = await self._store.delete_created_before(Table.ROOMS, cutoff)
        codes = [str(record["id"]) for record in removed]
        for code in codes:
            await self._store.delete(Table.POOL, {"room_id": code})
        orphans = await self._store.delete_created_before(Table.POOL, cutoff)
        if orphans:
            logger.info("stale pool rows removed", count=len(orphans))
        return codes

    async def run[T](self, code: str, operation: Callable[[Room], Awaitable[T]]) -> T:
        """Run a read-modify-write operation against the latest room snapshot.

        Raises RejectedError(ROOM_NOT_FOUND) when the room does not exist and
        RejectedError(WRITE_CONFLICT) when every attempt lost the race.
        """
        for attempt in range(1, self._max_attempts + 1):
            room = await self.get(code)
            if room is None:
                raise RejectedError(Rejection.ROOM_NOT_FOUND)
            try:
                return await operation(room)
            except (StaleVersionError, NotFoundError):
                logger.info("room changed during write, retrying", room_id=code, attempt=attempt)
        logger.warning("giving up on contended room write", room_id=code, attempts=self._max_attempts)
        raise RejectedError(Rejection.WRITE_CONFLICT)
