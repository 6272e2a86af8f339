"""Constants and builders shared by lobby tests."""

from datetime import UTC, datetime, timedelta

from shared.dal.models import Character, CharacterType

ROOM_CODE = "ABC123"
CHARACTER_IDS = ("char-x", "char-y", "char-z")

_EPOCH = datetime(2025, 1, 1, tzinfo=UTC)


def make_character(character_id: str, index: int = 0) -> Character:
    return Character(
        id=character_id,
        name=character_id.removeprefix("char-").upper(),
        type=CharacterType.WIZARD,
        created_by="author",
        created_at=_EPOCH + timedelta(minutes=index),
    )
