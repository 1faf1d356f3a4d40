"""Read models returned by RoomManager operations.

Field names are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True)``), matching what browser clients send.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from minddigit.logic.enums import FinishReason, RoomPhase


class ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class JoinResult(ResultModel):
    room_id: str
    player_id: str
    position: int
    phase: RoomPhase


class PhaseResult(ResultModel):
    room_id: str
    phase: RoomPhase
    agreed_digit_count: int | None = None
    current_turn_player_id: str | None = None


class GuessResult(ResultModel):
    guess: str
    bulls: int
    cows: int
    is_win: bool
    phase: RoomPhase
    next_turn_player_id: str | None = None
    winner_id: str | None = None


class PlayerView(ResultModel):
    """A player as seen by the requester. ``secret`` is only filled when allowed."""

    id: str
    name: str
    position: int
    selected_digit_count: int | None = None
    is_ready: bool
    is_connected: bool
    is_you: bool
    secret: str | None = None


class HistoryEntryView(ResultModel):
    turn: int
    player_id: str
    player_name: str
    guess: str
    bulls: int
    cows: int
    timestamp: datetime
    is_you: bool
    result: str  # compact "2B 1C" form


class RoomSnapshot(ResultModel):
    """Poll-style view of a room for one requester."""

    room_id: str
    phase: RoomPhase
    players: list[PlayerView]
    agreed_digit_count: int | None = None
    required_digits: int | None = None
    current_turn_player_id: str | None = None
    is_your_turn: bool = False
    history: list[HistoryEntryView]
    winner_id: str | None = None
    finish_reason: FinishReason | None = None
    is_active: bool
    recovered: bool
    last_activity: datetime


class HistoryView(ResultModel):
    room_id: str
    phase: RoomPhase
    entries: list[HistoryEntryView]
    your_guesses: int
    opponent_guesses: int
    current_turn_player_id: str | None = None
    is_your_turn: bool = False
    winner_id: str | None = None
    is_winner: bool = False


class OpponentSecret(ResultModel):
    opponent_player_id: str
    opponent_player_name: str
    opponent_secret: str


class SuggestedSecret(ResultModel):
    room_id: str
    digit_count: int
    secret: str
