"""Server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from minddigit.logic.enums import DigitCountPolicy
from minddigit.logic.rng import validate_seed_hex
from minddigit.logic.settings import MAX_SUPPORTED_DIGITS, GameSettings
from shared.validators import ListEnvSettingsSource, parse_cors_origins, parse_digit_counts

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource

_PREFERRED_DEFAULT_DIGITS = 4


class ServerSettings(BaseSettings):
    model_config = {"env_prefix": "MINDDIGIT_"}

    log_dir: str = Field(default="backend/logs/minddigit", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]

    # Unset means rooms live only in this process (lost on restart).
    redis_url: str | None = None
    room_ttl_seconds: int = Field(default=3600, ge=60)  # 1 hour default, min 60s
    player_ttl_seconds: int = Field(default=1800, ge=60)
    store_timeout_seconds: float = Field(default=3.0, gt=0, le=30)

    min_digits: int = Field(default=3, ge=1, le=MAX_SUPPORTED_DIGITS)
    max_digits: int = Field(default=6, ge=1, le=MAX_SUPPORTED_DIGITS)
    duplicate_digit_counts: list[int] = []
    digit_count_policy: DigitCountPolicy = DigitCountPolicy.HOST

    # Hex seed for reproducible first-turn choice (tests, replays of bug reports).
    turn_seed: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_cors_origins(v)

    @field_validator("duplicate_digit_counts", mode="before")
    @classmethod
    def validate_duplicate_digit_counts(cls, v: str | list[int]) -> list[int]:
        return parse_digit_counts(v)

    @field_validator("turn_seed")
    @classmethod
    def validate_turn_seed(cls, v: str | None) -> str | None:
        if v is not None:
            validate_seed_hex(v)
        return v

    @model_validator(mode="after")
    def _validate_digit_range(self) -> Self:
        if self.min_digits > self.max_digits:
            raise ValueError(f"min_digits ({self.min_digits}) must not exceed max_digits ({self.max_digits})")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, ListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings

    def game_settings(self) -> GameSettings:
        """Build gameplay rules from server configuration."""
        default_digits = min(max(_PREFERRED_DEFAULT_DIGITS, self.min_digits), self.max_digits)
        return GameSettings(
            min_digits=self.min_digits,
            max_digits=self.max_digits,
            duplicate_digit_counts=frozenset(self.duplicate_digit_counts),
            digit_count_policy=self.digit_count_policy,
            default_digit_count=default_digits,
        )
