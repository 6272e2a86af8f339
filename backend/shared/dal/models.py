"""Persistence models for rooms, character pools, and the leaderboard."""

import secrets
import string
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

MAX_PLAYERS = 2
MAX_GUESSES = 2
MIN_POOL_SIZE = 2

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def generate_room_code() -> str:
    """Return a fresh human-typable room code. Uniqueness is enforced on insert."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


class CharacterType(StrEnum):
    HUMAN_MALE = "human_male"
    HUMAN_FEMALE = "human_female"
    DOG = "dog"
    CAT = "cat"
    BIRD = "bird"
    FISH = "fish"
    ROBOT = "robot"
    ALIEN = "alien"
    MONSTER = "monster"
    SUPERHERO = "superhero"
    VILLAIN = "villain"
    WIZARD = "wizard"
    DRAGON = "dragon"
    UNICORN = "unicorn"
    OTHER = "other"


class Character(BaseModel, frozen=True):
    """User-authored catalog entry. Read-only from the room's point of view."""

    id: str
    name: str
    type: CharacterType = CharacterType.OTHER
    image_url: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)


class PoolEntry(BaseModel, frozen=True):
    """Join row placing a catalog character into one room's pool."""

    room_id: str
    character_id: str
    added_by: str
    added_at: datetime = Field(default_factory=utcnow)


class PoolCharacter(BaseModel, frozen=True):
    """A catalog character hydrated with who added it to the pool, and when."""

    character: Character
    added_by: str
    added_at: datetime

    @property
    def id(self) -> str:
        return self.character.id


class PlayerState(BaseModel):
    id: str  # user id
    name: str  # display name
    is_ready: bool = False


class PickState(BaseModel):
    character_id: str | None = None
    is_ready: bool = False


class Guess(BaseModel, frozen=True):
    character_id: str
    timestamp: datetime = Field(default_factory=utcnow)


class Room(BaseModel):
    """Shared coordination record for one match, keyed by its room code.

    ``version`` is bumped by the store on every versioned write and is what
    lets concurrent read-modify-write sequences detect each other.
    """

    id: str
    created_at: datetime = Field(default_factory=utcnow)
    players: list[PlayerState] = Field(default_factory=list)  # join order
    is_game_started: bool = False
    is_guessing_started: bool = False
    player_picks: dict[str, str] = Field(default_factory=dict)  # user id -> character id
    player_picks_state: dict[str, PickState] = Field(default_factory=dict)
    player_guesses: dict[str, list[Guess]] = Field(default_factory=dict)
    winner: str | None = None
    version: int = 0

    @property
    def player_ids(self) -> list[str]:
        return [p.id for p in self.players]

    @property
    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    @property
    def is_empty(self) -> bool:
        return not self.players

    @property
    def all_ready(self) -> bool:
        """True when exactly two players have each picked a character and readied up."""
        if len(self.players) != MAX_PLAYERS:
            return False
        for player in self.players:
            state = self.player_picks_state.get(player.id)
            if state is None or not state.is_ready or not state.character_id:
                return False
        return True

    def has_player(self, user_id: str) -> bool:
        return any(p.id == user_id for p in self.players)

    def get_player(self, user_id: str) -> PlayerState | None:
        return next((p for p in self.players if p.id == user_id), None)

    def opponent_of(self, user_id: str) -> str | None:
        """Return the other player's user id, or None when playing alone."""
        return next((p.id for p in self.players if p.id != user_id), None)

    def guess_count(self, user_id: str) -> int:
        return len(self.player_guesses.get(user_id, []))

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


class LeaderboardEntry(BaseModel):
    user_id: str
    games_played: int = 0
    wins: int = 0
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def losses(self) -> int:
        return self.games_played - self.wins
