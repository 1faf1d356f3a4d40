"""Parsers for list-valued settings read from environment variables.

List settings may be written either as a JSON array (``'["a","b"]'``,
``"[4,5]"``) or as a comma-separated string (``"a,b"``, ``"4,5"``).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def _split_list_value(value: str) -> list[Any]:
    stripped = value.strip()
    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list):
            raise ValueError("JSON value must be an array")
        return parsed
    return [item.strip() for item in stripped.split(",") if item.strip()]


def parse_cors_origins(value: str | list[str]) -> list[str]:
    """Parse allowed CORS origins. At least one origin is required."""
    origins = value if isinstance(value, list) else _split_list_value(value)
    if not all(isinstance(origin, str) for origin in origins):
        raise ValueError("CORS origins must be strings")
    if not origins:
        raise ValueError("CORS origins must not be empty")
    return origins


def parse_digit_counts(value: str | list[int]) -> list[int]:
    """Parse a list of digit counts. An empty value means no counts."""
    raw = value if isinstance(value, list) else _split_list_value(value)
    counts: list[int] = []
    for item in raw:
        if isinstance(item, bool):
            raise ValueError(f"Invalid digit count: {item!r}")
        try:
            counts.append(int(item))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid digit count: {item!r}") from None
    return counts


_RAW_LIST_FIELDS = {"cors_origins", "duplicate_digit_counts"}


class ListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands list fields to their validators as raw strings.

    pydantic-settings JSON-decodes list-typed env vars before validators run,
    which rejects the comma-separated form.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in _RAW_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
