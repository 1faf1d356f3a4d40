"""
Room state validation and repair.

The room's ``phase`` label is checked against what its player data actually
supports; the label is never trusted on its own. A label that is ahead of
the data (PLAYING without both secrets) or behind it (SECRET_SETTING with
both secrets set) is invalid, and repair recomputes the maximal phase the
data supports:

    fewer than 2 players            -> WAITING
    2 players, not all selected     -> DIGIT_SELECTION
    all selected, not all secreted  -> SECRET_SETTING
    all secreted                    -> PLAYING

A secret whose length differs from the agreed digit count cannot be played
against and is dropped by repair.

FINISHED is terminal and always valid. Neither function raises.
"""

import structlog
from pydantic import BaseModel, ConfigDict

from minddigit.logic.enums import RoomPhase
from minddigit.logic.settings import NUM_PLAYERS
from minddigit.logic.state import Player, Room

logger = structlog.get_logger()


class RoomValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    reason: str | None = None


_VALID = RoomValidation(valid=True)


def derive_phase(room: Room) -> RoomPhase:
    """Return the maximal non-terminal phase the room's player data supports."""
    if room.player_count < NUM_PLAYERS:
        return RoomPhase.WAITING
    if len(room.players_with_digits) < NUM_PLAYERS:
        return RoomPhase.DIGIT_SELECTION
    if len(room.players_with_secrets) < NUM_PLAYERS:
        return RoomPhase.SECRET_SETTING
    return RoomPhase.PLAYING


def _check_phase_requirements(room: Room) -> str | None:  # noqa: PLR0911
    """Return why the room's data fails its phase's requirements, or None."""
    count = room.player_count
    match room.phase:
        case RoomPhase.WAITING:
            if count >= NUM_PLAYERS:
                return "Should progress from WAITING with 2 players"
        case RoomPhase.DIGIT_SELECTION:
            if count != NUM_PLAYERS:
                return "Need 2 players for DIGIT_SELECTION"
        case RoomPhase.SECRET_SETTING:
            if count != NUM_PLAYERS or len(room.players_with_digits) < NUM_PLAYERS:
                return "Both players must select digits before SECRET_SETTING"
            if room.agreed_digit_count is None:
                return "SECRET_SETTING state needs agreed_digit_count"
        case RoomPhase.PLAYING:
            if count != NUM_PLAYERS or len(room.players_with_secrets) < NUM_PLAYERS:
                return "Both players must set secrets before PLAYING"
            if room.agreed_digit_count is None:
                return "PLAYING state needs agreed_digit_count"
            if room.current_turn_player_id is None:
                return "PLAYING state needs current_turn_player_id"
            if room.get_player(room.current_turn_player_id) is None:
                return "current_turn_player_id does not reference a player in the room"
    return None


def validate_room(room: Room) -> RoomValidation:
    """Check the room's phase label against its player data."""
    if room.phase == RoomPhase.FINISHED:
        return _VALID

    reason = _check_phase_requirements(room)
    if reason is not None:
        return RoomValidation(valid=False, reason=reason)

    if _mismatched_secrets(room):
        return RoomValidation(valid=False, reason="Secret length does not match agreed digit count")

    derived = derive_phase(room)
    if derived != room.phase:
        return RoomValidation(
            valid=False,
            reason=f"Player data supports {derived.value}, not {room.phase.value}",
        )
    return _VALID


def _mismatched_secrets(room: Room) -> list[Player]:
    if room.agreed_digit_count is None:
        return []
    return [p for p in room.players_with_secrets if len(p.secret) != room.agreed_digit_count]


def _drop_mismatched_secrets(room: Room) -> None:
    for player in _mismatched_secrets(room):
        logger.warning("dropping unplayable secret", room_id=room.id, player_id=player.id)
        player.secret = None
        player.is_ready = False


def _backfill_digit_count(room: Room) -> None:
    if room.agreed_digit_count is not None:
        return
    host = room.host
    if host is not None and host.selected_digit_count is not None:
        room.agreed_digit_count = host.selected_digit_count
        return
    room.agreed_digit_count = next((p.selected_digit_count for p in room.players_with_digits), None)


def repair_room(room: Room) -> Room:
    """Normalize an invalid room in place and return it.

    A valid room is returned untouched, so repair is idempotent. A repaired
    room is flagged ``recovered``.
    """
    validation = validate_room(room)
    if validation.valid:
        return room

    previous = room.phase
    if len(room.players_with_digits) == NUM_PLAYERS:
        _backfill_digit_count(room)
    _drop_mismatched_secrets(room)
    phase = derive_phase(room)
    room.phase = phase

    if phase == RoomPhase.PLAYING:
        turn = room.current_turn_player_id
        if turn is None or room.get_player(turn) is None:
            # deterministic choice: earliest joiner
            room.current_turn_player_id = room.players[0].id
    else:
        room.current_turn_player_id = None

    room.recovered = True
    logger.info(
        "room repaired",
        room_id=room.id,
        reason=validation.reason,
        previous_phase=previous,
        phase=phase,
    )
    return room
