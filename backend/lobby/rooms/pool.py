"""Per-room pool of catalog characters available for the match."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import PoolCharacter, PoolEntry
from shared.dal.store import DuplicateKeyError, StaleVersionError, StoreError, Table
from shared.rejections import RejectedError, Rejection

if TYPE_CHECKING:
    from shared.dal.catalog import CharacterCatalog
    from shared.dal.models import Room
    from shared.dal.rooms import RoomRepository

logger = structlog.get_logger()


class CharacterPoolManager:
    """Maintains pool join rows.

    Duplicates are caught by the store's primary key on (room_id,
    character_id) rather than by a read-before-write check. The pool is
    frozen once the game has started.

    Every pool edit also writes the room back at the version it was checked
    against. ``start_game`` counts the pool inside its own versioned write,
    so an edit and a start that overlap cannot both commit: the loser
    retries against the other's result.
    """

    def __init__(self, rooms: RoomRepository, catalog: CharacterCatalog) -> None:
        self._rooms = rooms
        self._store = rooms.store
        self._catalog = catalog

    async def add_character_to_pool(self, code: str, character_id: str, added_by: str) -> Rejection | None:
        log = logger.bind(room_id=code, character_id=character_id, added_by=added_by)
        key = {"room_id": code, "character_id": character_id}

        async def _add(room: Room) -> None:
            _require_editable(room)
            if await self._catalog.get_character(character_id) is None:
                raise RejectedError(Rejection.CHARACTER_NOT_FOUND)
            await self._rooms.save(room)
            entry = PoolEntry(room_id=code, character_id=character_id, added_by=added_by)
            await self._store.insert(Table.POOL, entry.model_dump(mode="json"))
            if await self._drop_if_orphaned(key):
                raise RejectedError(Rejection.ROOM_NOT_FOUND)

        try:
            await self._rooms.run(code, _add)
        except RejectedError as exc:
            log.info("pool add rejected", reason=exc.reason)
            return exc.reason
        except DuplicateKeyError:
            log.info("pool add rejected", reason=Rejection.ALREADY_IN_POOL)
            return Rejection.ALREADY_IN_POOL
        except StoreError:
            log.exception("pool add failed")
            return Rejection.STORE_UNAVAILABLE
        log.info("character added to pool")
        return None

    async def remove_character_from_pool(self, code: str, character_id: str) -> Rejection | None:
        """Delete a pool row. Removing an absent row, or from a missing room, succeeds."""
        log = logger.bind(room_id=code, character_id=character_id)
        key = {"room_id": code, "character_id": character_id}

        async def _remove(room: Room) -> bool:
            _require_editable(room)
            record = await self._store.get(Table.POOL, key)
            if record is None:
                return False
            await self._store.delete(Table.POOL, key)
            try:
                await self._rooms.save(room)
            except StaleVersionError:
                # Put the row back before retrying against the newer room.
                with contextlib.suppress(DuplicateKeyError):
                    await self._store.insert(Table.POOL, record)
                await self._drop_if_orphaned(key)
                raise
            return True

        try:
            removed = await self._rooms.run(code, _remove)
        except RejectedError as exc:
            if exc.reason == Rejection.ROOM_NOT_FOUND:
                log.info("pool remove on missing room ignored")
                return None
            log.info("pool remove rejected", reason=exc.reason)
            return exc.reason
        except StoreError:
            log.exception("pool remove failed")
            return Rejection.STORE_UNAVAILABLE
        log.info("character removed from pool", removed=removed)
        return None

    async def get_character_pool(self, code: str) -> list[PoolCharacter]:
        """Return the pool hydrated from the catalog, oldest addition first."""
        try:
            entries = [PoolEntry.model_validate(r) for r in await self._store.select(Table.POOL, {"room_id": code})]
            characters = await self._catalog.get_characters(e.character_id for e in entries)
        except StoreError:
            logger.exception("pool fetch failed", room_id=code)
            return []

        pool = []
        for entry in sorted(entries, key=lambda e: e.added_at):
            character = characters.get(entry.character_id)
            if character is None:
                logger.warning("pool entry references missing character", room_id=code, character_id=entry.character_id)
                continue
            pool.append(PoolCharacter(character=character, added_by=entry.added_by, added_at=entry.added_at))
        return pool

    async def pool_size(self, code: str) -> int:
        return len(await self._store.select(Table.POOL, {"room_id": code}))

    async def in_pool(self, code: str, character_id: str) -> bool:
        return await self._store.get(Table.POOL, {"room_id": code, "character_id": character_id}) is not None

    async def _drop_if_orphaned(self, key: dict[str, str]) -> bool:
        """Delete a just-written pool row if its room was deleted meanwhile."""
        if await self._rooms.get(key["room_id"]) is not None:
            return False
        await self._store.delete(Table.POOL, key)
        logger.info("pool row for deleted room dropped", **key)
        return True


def _require_editable(room: Room) -> None:
    if room.is_game_started:
        raise RejectedError(Rejection.GAME_ALREADY_STARTED)
