from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from shared.dal.models import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH

Identifier = Annotated[str, Field(min_length=1, max_length=128)]

ROOM_CODE_PATTERN = f"^[{ROOM_CODE_ALPHABET}]{{{ROOM_CODE_LENGTH}}}$"


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(pattern=ROOM_CODE_PATTERN)


class JoinRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: Identifier
    display_name: str = Field(min_length=1, max_length=64)


class AddPoolCharacterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    character_id: Identifier
    added_by: Identifier


class PickCharacterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: Identifier
    character_id: str | None = None
    is_ready: bool = False


class GuessRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: Identifier
    character_id: Identifier
