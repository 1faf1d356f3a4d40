from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"


class RequestModel(BaseModel):
    """Request bodies arrive camelCase (``roomId``); snake_case is accepted too."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class JoinRequest(RequestModel):
    player_name: str = Field(max_length=200)


class RoomPlayerRequest(RequestModel):
    room_id: str = Field(min_length=1, max_length=50, pattern=_ID_PATTERN)
    player_id: str = Field(min_length=1, max_length=100, pattern=_ID_PATTERN)


class SelectDigitRequest(RoomPlayerRequest):
    digits: int


class SetSecretRequest(RoomPlayerRequest):
    secret: str = Field(max_length=20)


class GuessRequest(RoomPlayerRequest):
    guess: str = Field(max_length=20)
