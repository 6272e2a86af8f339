"""Guess resolution: each player gets two tries at the opponent's secret pick.

    Playing --correct guess--> Won(guesser)
    Playing --second wrong guess--> Won(opponent)
    Playing --first wrong guess--> Playing
    Playing --opponent leaves--> Won(remaining player)   (lobby membership)

Won is terminal. Guesses arriving after a winner is set are rejected.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import MAX_GUESSES, Guess, Room
from shared.dal.store import StoreError
from shared.leaderboard import report_match_result
from shared.rejections import RejectedError, Rejection

if TYPE_CHECKING:
    from shared.dal.rooms import RoomRepository
    from shared.leaderboard import LeaderboardSink

logger = structlog.get_logger()


class GuessOutcome(StrEnum):
    CORRECT = "correct"  # guesser wins
    WRONG = "wrong"  # one guess left
    OUT_OF_GUESSES = "out-of-guesses"  # second miss, opponent wins


def resolve_guess(room: Room, user_id: str, character_id: str) -> tuple[GuessOutcome, str]:
    """Apply a guess to ``room`` in place.

    Returns the outcome and the opponent's user id. Raises RejectedError
    when the guess is not allowed.
    """
    if room.winner is not None:
        raise RejectedError(Rejection.GAME_OVER)
    if not room.is_guessing_started:
        raise RejectedError(Rejection.GUESSING_NOT_STARTED)
    if not room.has_player(user_id):
        raise RejectedError(Rejection.NOT_IN_ROOM)

    previous = room.player_guesses.get(user_id, [])
    if len(previous) >= MAX_GUESSES:
        raise RejectedError(Rejection.NO_GUESSES_LEFT)

    opponent = next((uid for uid in room.player_picks if uid != user_id), None)
    if opponent is None:
        raise RejectedError(Rejection.GUESSING_NOT_STARTED)

    room.player_guesses[user_id] = [*previous, Guess(character_id=character_id)]

    if room.player_picks[opponent] == character_id:
        room.winner = user_id
        return GuessOutcome.CORRECT, opponent
    if len(previous) == MAX_GUESSES - 1:
        room.winner = opponent
        return GuessOutcome.OUT_OF_GUESSES, opponent
    return GuessOutcome.WRONG, opponent


class GuessResolutionEngine:
    def __init__(self, rooms: RoomRepository, leaderboard: LeaderboardSink) -> None:
        self._rooms = rooms
        self._leaderboard = leaderboard

    async def make_guess(self, code: str, user_id: str, character_id: str) -> GuessOutcome | Rejection:
        """Check a guess against the opponent's pick and settle the match if it ends it.

        The winner is written in the same versioned update as the guess, so
        at most one guess can ever end a match; the leaderboard is told once,
        after that write commits.
        """
        log = logger.bind(room_id=code, user_id=user_id, character_id=character_id)

        async def _guess(room: Room) -> tuple[GuessOutcome, str, Room]:
            outcome, opponent = resolve_guess(room, user_id, character_id)
            return outcome, opponent, await self._rooms.save(room)

        try:
            outcome, opponent, room = await self._rooms.run(code, _guess)
        except RejectedError as exc:
            log.info("guess rejected", reason=exc.reason)
            return exc.reason
        except StoreError:
            log.exception("guess failed")
            return Rejection.STORE_UNAVAILABLE

        log.info("guess recorded", outcome=outcome, guess_count=room.guess_count(user_id))

        if outcome == GuessOutcome.CORRECT:
            log.info("match won by correct guess", winner=user_id)
            await report_match_result(self._leaderboard, user_id, opponent, code)
        elif outcome == GuessOutcome.OUT_OF_GUESSES:
            log.info("match lost on second wrong guess", winner=opponent)
            await report_match_result(self._leaderboard, opponent, user_id, code)
        return outcome

    async def get_guess_count(self, code: str, user_id: str) -> int:
        try:
            room = await self._rooms.get(code)
        except StoreError:
            logger.exception("guess count fetch failed", room_id=code, user_id=user_id)
            return 0
        return room.guess_count(user_id) if room is not None else 0

    async def get_winner(self, code: str) -> str | None:
        try:
            room = await self._rooms.get(code)
        except StoreError:
            logger.exception("winner fetch failed", room_id=code)
            return None
        return room.winner if room is not None else None
