"""Room creation, lookup, deletion, and the stale-room sweeper."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import Room, utcnow
from shared.dal.store import DuplicateKeyError, StoreError
from shared.rejections import Rejection

if TYPE_CHECKING:
    from shared.dal.rooms import RoomRepository

logger = structlog.get_logger()

DEFAULT_RETENTION = timedelta(hours=1)
DEFAULT_SWEEP_INTERVAL_SECONDS = 3600


class RoomLifecycleManager:
    """Creates, fetches, and deletes room records.

    Room codes are chosen by the caller; a taken code is reported as
    ``room-already-exists`` so the caller can retry with a new one.
    """

    def __init__(self, rooms: RoomRepository) -> None:
        self._rooms = rooms
        self._sweeper_task: asyncio.Task[None] | None = None

    async def create_room(self, code: str) -> Room | Rejection:
        log = logger.bind(room_id=code)
        try:
            room = await self._rooms.insert(Room(id=code))
        except DuplicateKeyError:
            log.info("room create rejected", reason=Rejection.ROOM_ALREADY_EXISTS)
            return Rejection.ROOM_ALREADY_EXISTS
        except StoreError:
            log.exception("room create failed")
            return Rejection.STORE_UNAVAILABLE
        log.info("room created")
        return room

    async def room_exists(self, code: str) -> bool:
        return await self.get_room(code) is not None

    async def get_room(self, code: str) -> Room | None:
        try:
            return await self._rooms.get(code)
        except StoreError:
            logger.exception("room fetch failed", room_id=code)
            return None

    async def delete_room(self, code: str) -> Rejection | None:
        """Delete a room and its pool. Deleting a missing room succeeds."""
        try:
            existed = await self._rooms.delete(code)
        except StoreError:
            logger.exception("room delete failed", room_id=code)
            return Rejection.STORE_UNAVAILABLE
        logger.info("room deleted", room_id=code, existed=existed)
        return None

    async def cleanup_stale_rooms(self, max_age: timedelta = DEFAULT_RETENTION) -> Rejection | None:
        """Delete every room created more than ``max_age`` ago, whatever its state."""
        cutoff = utcnow() - max_age
        try:
            removed = await self._rooms.delete_created_before(cutoff)
        except StoreError:
            logger.exception("stale room cleanup failed")
            return Rejection.STORE_UNAVAILABLE
        if removed:
            logger.info("stale rooms removed", count=len(removed), room_ids=removed)
        return None

    def start_sweeper(
        self,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        max_age: timedelta = DEFAULT_RETENTION,
    ) -> None:
        """Start the periodic stale-room sweep."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweep_loop(interval_seconds, max_age))

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None

    async def _sweep_loop(self, interval_seconds: float, max_age: timedelta) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.cleanup_stale_rooms(max_age)
            except Exception:
                logger.exception("stale room sweep crashed, will retry next interval")
