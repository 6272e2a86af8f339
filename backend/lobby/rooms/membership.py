"""Join and leave transitions for the two player slots of a room."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.dal.models import PlayerState, Room
from shared.dal.store import StoreError
from shared.leaderboard import report_match_result
from shared.rejections import RejectedError, Rejection

if TYPE_CHECKING:
    from shared.dal.rooms import RoomRepository
    from shared.leaderboard import LeaderboardSink

logger = structlog.get_logger()


def join_rejection(room: Room, user_id: str) -> Rejection | None:
    """Return why ``user_id`` may not join ``room``, or None if they may."""
    if room.is_game_started:
        return Rejection.GAME_ALREADY_STARTED
    if room.is_full:
        return Rejection.ROOM_FULL
    if room.has_player(user_id):
        return Rejection.ALREADY_IN_ROOM
    return None


class MembershipCoordinator:
    """Admits up to two players and handles departures.

    Leaving a started, undecided match forfeits it to the remaining player.
    A departure that empties the room deletes it.
    """

    def __init__(self, rooms: RoomRepository, leaderboard: LeaderboardSink) -> None:
        self._rooms = rooms
        self._leaderboard = leaderboard

    async def can_join(self, code: str, user_id: str) -> Rejection | None:
        """Read-only pre-check; ``join_room`` re-validates against the latest snapshot."""
        try:
            room = await self._rooms.get(code)
        except StoreError:
            logger.exception("join check failed", room_id=code, user_id=user_id)
            return Rejection.STORE_UNAVAILABLE
        if room is None:
            return Rejection.ROOM_NOT_FOUND
        return join_rejection(room, user_id)

    async def join_room(self, code: str, user_id: str, display_name: str) -> Room | Rejection:
        log = logger.bind(room_id=code, user_id=user_id)

        async def _join(room: Room) -> Room:
            reason = join_rejection(room, user_id)
            if reason is not None:
                raise RejectedError(reason)
            room.players.append(PlayerState(id=user_id, name=display_name))
            return await self._rooms.save(room)

        try:
            room = await self._rooms.run(code, _join)
        except RejectedError as exc:
            log.info("join rejected", reason=exc.reason)
            return exc.reason
        except StoreError:
            log.exception("join failed")
            return Rejection.STORE_UNAVAILABLE
        log.info("player joined room", display_name=display_name, player_count=len(room.players))
        return room

    async def leave_room(self, code: str, user_id: str) -> Rejection | None:
        """Remove a player. Leaving a room that no longer exists is a successful no-op."""
        log = logger.bind(room_id=code, user_id=user_id)

        async def _leave(room: Room) -> tuple[bool, str | None]:
            if not room.has_player(user_id):
                raise RejectedError(Rejection.NOT_IN_ROOM)
            forfeit_winner = None
            if room.is_game_started and room.winner is None:
                forfeit_winner = room.opponent_of(user_id)
                room.winner = forfeit_winner
            room.players = [p for p in room.players if p.id != user_id]
            if room.is_empty:
                await self._rooms.remove(room)
                return True, forfeit_winner
            await self._rooms.save(room)
            return False, forfeit_winner

        try:
            deleted, forfeit_winner = await self._rooms.run(code, _leave)
        except RejectedError as exc:
            if exc.reason == Rejection.ROOM_NOT_FOUND:
                log.info("leave on missing room ignored")
                return None
            log.info("leave rejected", reason=exc.reason)
            return exc.reason
        except StoreError:
            log.exception("leave failed")
            return Rejection.STORE_UNAVAILABLE

        if deleted:
            log.info("last player left, room deleted")
        else:
            log.info("player left room")

        if forfeit_winner is not None:
            log.info("match forfeited", winner=forfeit_winner)
            await report_match_result(self._leaderboard, forfeit_winner, user_id, code)
        return None
