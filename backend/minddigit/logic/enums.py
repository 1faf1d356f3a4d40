"""
String enum definitions for room and game concepts.
"""

from enum import Enum


class RoomPhase(str, Enum):
    """Phase of a room in the match state machine."""

    WAITING = "WAITING"
    DIGIT_SELECTION = "DIGIT_SELECTION"
    SECRET_SETTING = "SECRET_SETTING"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


class DigitCountPolicy(str, Enum):
    """How differing digit-count selections between the two players are reconciled."""

    HOST = "host"  # take player 1's selection
    REQUIRE_MATCH = "require_match"  # reject until both selections are equal


class FinishReason(str, Enum):
    """Why a room reached FINISHED."""

    SOLVED = "solved"
    OPPONENT_LEFT = "opponent_left"
    ABANDONED = "abandoned"


class GameErrorCode(str, Enum):
    """Error codes reported to clients for rejected actions."""

    INVALID_INPUT = "invalid_input"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"
    NOT_YOUR_TURN = "not_your_turn"
    OPPONENT_NOT_READY = "opponent_not_ready"
    CONFLICT = "conflict"
