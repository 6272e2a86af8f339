"""Game start, secret picks, and the ready handshake."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.dal.models import MAX_PLAYERS, MIN_POOL_SIZE, PickState, Room
from shared.dal.store import StoreError
from shared.rejections import RejectedError, Rejection

if TYPE_CHECKING:
    from lobby.rooms.pool import CharacterPoolManager
    from shared.dal.rooms import RoomRepository

logger = structlog.get_logger()


class PickCoordinator:
    """Moves a room from lobby to pick phase, and from pick phase to guessing.

    Per player: no pick -> picked -> ready. Ready is final for the match.
    The switch to guessing happens inside the same versioned write that
    makes the second player ready, so it fires exactly once no matter how
    many clients are watching the room.
    """

    def __init__(self, rooms: RoomRepository, pool: CharacterPoolManager) -> None:
        self._rooms = rooms
        self._pool = pool

    async def can_start(self, code: str) -> bool:
        """A room can start with two players and at least two pool characters."""
        try:
            room = await self._rooms.get(code)
            if room is None or room.is_game_started:
                return False
            return await self._start_rejection(room) is None
        except StoreError:
            logger.exception("start check failed", room_id=code)
            return False

    async def start_game(self, code: str) -> Rejection | None:
        """Enter the pick phase. Calling it on a started room changes nothing."""
        log = logger.bind(room_id=code)

        async def _start(room: Room) -> bool:
            if room.is_game_started:
                return False
            reason = await self._start_rejection(room)
            if reason is not None:
                raise RejectedError(reason)
            room.is_game_started = True
            await self._rooms.save(room)
            return True

        try:
            started = await self._rooms.run(code, _start)
        except RejectedError as exc:
            log.info("start rejected", reason=exc.reason)
            return exc.reason
        except StoreError:
            log.exception("start failed")
            return Rejection.STORE_UNAVAILABLE
        if started:
            log.info("game started")
        return None

    async def pick_character(
        self,
        code: str,
        user_id: str,
        character_id: str | None,
        is_ready: bool = False,  # noqa: FBT001, FBT002
    ) -> Room | Rejection:
        """Record a player's secret pick and readiness.

        ``character_id`` may be omitted to ready up with an earlier pick.
        Returns the updated room; ``room.is_guessing_started`` tells the
        caller whether both players are now locked in.
        """
        log = logger.bind(room_id=code, user_id=user_id)

        async def _pick(room: Room) -> tuple[Room, bool]:
            if not room.is_game_started:
                raise RejectedError(Rejection.GAME_NOT_STARTED)
            player = room.get_player(user_id)
            if player is None:
                raise RejectedError(Rejection.NOT_IN_ROOM)
            state = room.player_picks_state.get(user_id, PickState())
            if state.is_ready:
                raise RejectedError(Rejection.ALREADY_READY)
            chosen = character_id or state.character_id
            if is_ready and not chosen:
                raise RejectedError(Rejection.NO_CHARACTER_PICKED)

            if chosen:
                room.player_picks[user_id] = chosen
            room.player_picks_state[user_id] = PickState(character_id=chosen, is_ready=is_ready)
            player.is_ready = is_ready

            transitioned = not room.is_guessing_started and room.all_ready
            if transitioned:
                room.is_guessing_started = True
            return await self._rooms.save(room), transitioned

        try:
            if character_id and not await self._pool.in_pool(code, character_id):
                log.info("pick rejected", reason=Rejection.CHARACTER_NOT_IN_POOL, character_id=character_id)
                return Rejection.CHARACTER_NOT_IN_POOL
            room, guessing_started = await self._rooms.run(code, _pick)
        except RejectedError as exc:
            log.info("pick rejected", reason=exc.reason)
            return exc.reason
        except StoreError:
            log.exception("pick failed")
            return Rejection.STORE_UNAVAILABLE

        log.info("character picked", is_ready=is_ready)
        if guessing_started:
            log.info("both players ready, guessing started")
        return room

    async def _start_rejection(self, room: Room) -> Rejection | None:
        if len(room.players) < MAX_PLAYERS:
            return Rejection.NOT_ENOUGH_PLAYERS
        if await self._pool.pool_size(room.id) < MIN_POOL_SIZE:
            return Rejection.NOT_ENOUGH_CHARACTERS
        return None
