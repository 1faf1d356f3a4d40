"""
Validation and generation of secrets, guesses, room codes and player names.

Secrets and guesses share one format rule: exactly ``digit_count`` decimal
digits, unique unless duplicates are allowed for that digit count.
"""

from __future__ import annotations

import string
import uuid
from typing import TYPE_CHECKING

from minddigit.logic.exceptions import InvalidInputError

if TYPE_CHECKING:
    import random

ROOM_CODE_LENGTH = 8
MAX_PLAYER_NAME_LENGTH = 50


def validate_code(
    code: str | None,
    digit_count: int,
    *,
    allow_duplicates: bool = False,
    label: str = "secret",
) -> str:
    """Validate a secret or guess and return it unchanged.

    Raises InvalidInputError naming the failed rule; the error context
    carries ``required_digits`` so the client can retry.
    """
    if code is None or code == "":
        raise InvalidInputError(f"{label.capitalize()} is required", required_digits=digit_count)
    if not isinstance(code, str):
        raise InvalidInputError(f"{label.capitalize()} must be a string", required_digits=digit_count)
    if len(code) != digit_count:
        raise InvalidInputError(
            f"{label.capitalize()} must be {digit_count} digits",
            required_digits=digit_count,
        )
    if any(ch not in string.digits for ch in code):
        raise InvalidInputError(
            f"{label.capitalize()} must contain only numbers",
            required_digits=digit_count,
        )
    if not allow_duplicates and len(set(code)) != len(code):
        raise InvalidInputError(
            f"{label.capitalize()} cannot have duplicate digits",
            required_digits=digit_count,
        )
    return code


def generate_secret(digit_count: int, rng: random.Random, *, allow_duplicates: bool = False) -> str:
    """Generate a random code that passes validate_code for the same rules."""
    if allow_duplicates:
        return "".join(rng.choice(string.digits) for _ in range(digit_count))
    if digit_count > len(string.digits):
        raise ValueError(f"Cannot build {digit_count} unique digits")
    return "".join(rng.sample(string.digits, digit_count))


def generate_room_code() -> str:
    """Generate a short uppercase room code."""
    return uuid.uuid4().hex[:ROOM_CODE_LENGTH].upper()


def normalize_player_name(name: str | None) -> str:
    """Trim a display name and reject empty or over-long values."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError("Player name is required")
    trimmed = name.strip()
    if len(trimmed) > MAX_PLAYER_NAME_LENGTH:
        raise InvalidInputError(f"Player name must be at most {MAX_PLAYER_NAME_LENGTH} characters")
    return trimmed
