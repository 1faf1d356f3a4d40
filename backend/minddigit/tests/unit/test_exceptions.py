"""Tests for the domain exception hierarchy."""

import pytest

from minddigit.logic.enums import GameErrorCode
from minddigit.logic.exceptions import (
    ConflictError,
    GameRuleError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    NotYourTurnError,
    OpponentNotReadyError,
)


class TestGameRuleError:
    @pytest.mark.parametrize(
        ("error_cls", "code"),
        [
            (InvalidInputError, GameErrorCode.INVALID_INPUT),
            (InvalidStateError, GameErrorCode.INVALID_STATE),
            (NotFoundError, GameErrorCode.NOT_FOUND),
            (NotYourTurnError, GameErrorCode.NOT_YOUR_TURN),
            (OpponentNotReadyError, GameErrorCode.OPPONENT_NOT_READY),
            (ConflictError, GameErrorCode.CONFLICT),
        ],
    )
    def test_subclass_codes(self, error_cls, code):
        err = error_cls("nope")
        assert isinstance(err, GameRuleError)
        assert err.code == code

    def test_message_and_context(self):
        err = NotYourTurnError("Not your turn", current_turn_player_id="p2")
        assert str(err) == "Not your turn"
        assert err.message == "Not your turn"
        assert err.context == {"current_turn_player_id": "p2"}

    def test_to_dict_merges_context(self):
        err = InvalidInputError("Guess must be 4 digits", required_digits=4)
        assert err.to_dict() == {
            "error": "invalid_input",
            "message": "Guess must be 4 digits",
            "required_digits": 4,
        }
