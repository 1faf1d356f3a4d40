"""Typed domain exceptions for game rule violations.

All rejected player actions raise subclasses of GameRuleError rather than
raw ValueError. Each error carries a stable GameErrorCode and a context
dict (current phase, required digit count, whose turn it is) so the
caller can correct the request and retry. The HTTP layer converts them
to JSON error responses at the route boundary.
"""

from typing import Any

from minddigit.logic.enums import GameErrorCode


class GameRuleError(Exception):
    """Base exception for rejected room/game actions."""

    code: GameErrorCode = GameErrorCode.INVALID_STATE

    def __init__(self, message: str, **context: Any) -> None:  # noqa: ANN401
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {"error": self.code.value, "message": self.message, **self.context}


class InvalidInputError(GameRuleError):
    """Malformed name, digit count, secret or guess."""

    code = GameErrorCode.INVALID_INPUT


class InvalidStateError(GameRuleError):
    """Action attempted in the wrong phase."""

    code = GameErrorCode.INVALID_STATE


class NotFoundError(GameRuleError):
    """Room or player is absent and cannot be recovered."""

    code = GameErrorCode.NOT_FOUND


class NotYourTurnError(GameRuleError):
    """Guess submitted by the player who does not hold the turn."""

    code = GameErrorCode.NOT_YOUR_TURN


class OpponentNotReadyError(GameRuleError):
    """Guess submitted before the opponent has a secret."""

    code = GameErrorCode.OPPONENT_NOT_READY


class ConflictError(GameRuleError):
    """No unused room code could be allocated, or the room is already full."""

    code = GameErrorCode.CONFLICT
