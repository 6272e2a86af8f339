"""Structured rejection reasons returned by room operations.

Values are the strings clients render, so they are part of the public
contract and must stay stable.
"""

from enum import StrEnum


class Rejection(StrEnum):
    # not found
    ROOM_NOT_FOUND = "room-not-found"
    CHARACTER_NOT_FOUND = "character-not-found"
    NOT_IN_ROOM = "not-in-room"

    # conflicts
    ROOM_ALREADY_EXISTS = "room-already-exists"
    ALREADY_IN_POOL = "already-in-pool"
    WRITE_CONFLICT = "write-conflict"

    # membership
    GAME_ALREADY_STARTED = "game-already-started"
    ROOM_FULL = "room-full"
    ALREADY_IN_ROOM = "already-in-room"

    # start / pick
    NOT_ENOUGH_PLAYERS = "not-enough-players"
    NOT_ENOUGH_CHARACTERS = "not-enough-characters"
    GAME_NOT_STARTED = "game-not-started"
    CHARACTER_NOT_IN_POOL = "character-not-in-pool"
    NO_CHARACTER_PICKED = "no-character-picked"
    ALREADY_READY = "already-ready"

    # guessing
    GUESSING_NOT_STARTED = "guessing-not-started"
    NO_GUESSES_LEFT = "no-guesses-left"
    GAME_OVER = "game-over"

    # transport
    STORE_UNAVAILABLE = "store-unavailable"


NOT_FOUND_REJECTIONS = frozenset(
    {Rejection.ROOM_NOT_FOUND, Rejection.CHARACTER_NOT_FOUND, Rejection.NOT_IN_ROOM},
)


class RejectedError(Exception):
    """Raised inside a room operation to abort it with a rejection reason."""

    def __init__(self, reason: Rejection) -> None:
        super().__init__(reason.value)
        self.reason = reason
