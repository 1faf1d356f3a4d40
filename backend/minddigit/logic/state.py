"""
Room and player state models.

Rooms and players are plain pydantic models so they round-trip through
the key-value store as JSON (model_dump(mode="json") / model_validate).
The lifecycle manager loads a copy, mutates it under the room lock and
writes it back; nothing here touches storage.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from minddigit.logic.enums import FinishReason, RoomPhase
from minddigit.logic.settings import NUM_PLAYERS


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class GuessRecord(BaseModel):
    """One scored guess. Immutable once appended to a history."""

    model_config = ConfigDict(frozen=True)

    player_id: str
    player_name: str
    guess: str
    bulls: int
    cows: int
    turn_index: int  # 1-based position in the room history
    timestamp: datetime = Field(default_factory=utc_now)


class Player(BaseModel):
    """
    A player seated in a room.

    Lifecycle:
    - Created by join (position 1 = host, position 2 = joiner)
    - selected_digit_count set during DIGIT_SELECTION
    - secret and is_ready set during SECRET_SETTING
    - is_connected cleared on leave
    """

    id: str
    name: str
    room_id: str
    position: int = Field(ge=1, le=NUM_PLAYERS)
    selected_digit_count: int | None = None
    secret: str | None = None
    is_ready: bool = False
    is_connected: bool = True
    guess_history: list[GuessRecord] = Field(default_factory=list)
    recovered: bool = False  # placeholder fabricated by recovery-on-read
    last_updated: datetime = Field(default_factory=utc_now)

    @property
    def is_host(self) -> bool:
        return self.position == 1


class Room(BaseModel):
    """
    A two-player match context.

    ``phase`` is a cached label: the authoritative phase is whatever the
    player data supports (see minddigit.logic.state_check), and a label
    that disagrees with the data is repaired on load.
    """

    id: str
    players: list[Player] = Field(default_factory=list, max_length=NUM_PLAYERS)  # join order
    phase: RoomPhase = RoomPhase.WAITING
    agreed_digit_count: int | None = None
    current_turn_player_id: str | None = None
    history: list[GuessRecord] = Field(default_factory=list)
    winner_id: str | None = None
    finish_reason: FinishReason | None = None
    is_active: bool = True
    recovered: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_full(self) -> bool:
        return self.player_count >= NUM_PLAYERS

    @property
    def connected_players(self) -> list[Player]:
        return [p for p in self.players if p.is_connected]

    @property
    def host(self) -> Player | None:
        """Return the position-1 player, falling back to the earliest joiner."""
        for player in self.players:
            if player.is_host:
                return player
        return self.players[0] if self.players else None

    @property
    def players_with_digits(self) -> list[Player]:
        return [p for p in self.players if p.selected_digit_count is not None]

    @property
    def players_with_secrets(self) -> list[Player]:
        return [p for p in self.players if p.secret]

    def get_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def opponent_of(self, player_id: str) -> Player | None:
        """Return the other player of a full room, or None."""
        if not self.is_full:
            return None
        for player in self.players:
            if player.id != player_id:
                return player
        return None

    def next_free_position(self) -> int | None:
        """Return the lowest unused position, or None if the room is full."""
        taken = {p.position for p in self.players}
        for position in range(1, NUM_PLAYERS + 1):
            if position not in taken:
                return position
        return None

    def touch(self) -> None:
        self.last_activity = utc_now()
