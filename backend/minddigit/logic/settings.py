"""Centralized game settings - all configurable gameplay rules."""

from __future__ import annotations

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from minddigit.logic.enums import DigitCountPolicy

NUM_PLAYERS = 2
MAX_SUPPORTED_DIGITS = 10  # unique decimal digits run out past 10


class GameSettings(BaseModel):
    """
    Configuration for digit-count range, duplicate-digit rule and selection policy.

    All fields have defaults matching the canonical rules: 3 to 6 digits,
    unique digits for every length, host's digit count wins.
    """

    model_config = ConfigDict(frozen=True)

    min_digits: int = Field(default=3, ge=1, le=MAX_SUPPORTED_DIGITS)
    max_digits: int = Field(default=6, ge=1, le=MAX_SUPPORTED_DIGITS)

    # digit counts for which secrets and guesses may repeat a digit
    duplicate_digit_counts: frozenset[int] = frozenset()

    digit_count_policy: DigitCountPolicy = DigitCountPolicy.HOST

    # used when recovery has to rebuild a room with no surviving selection
    default_digit_count: int = 4

    max_room_code_attempts: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _validate_ranges(self) -> Self:
        if self.min_digits > self.max_digits:
            raise ValueError(f"min_digits ({self.min_digits}) must not exceed max_digits ({self.max_digits})")
        if not self.is_valid_digit_count(self.default_digit_count):
            raise ValueError(
                f"default_digit_count must be within {self.min_digits}-{self.max_digits}, "
                f"got {self.default_digit_count}",
            )
        return self

    def is_valid_digit_count(self, count: int) -> bool:
        return self.min_digits <= count <= self.max_digits

    def allows_duplicates(self, digit_count: int) -> bool:
        """Check whether codes of the given length may repeat a digit."""
        return digit_count in self.duplicate_digit_counts
