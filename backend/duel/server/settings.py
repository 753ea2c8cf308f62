"""Duel server configuration via environment variables."""

import json
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from duel.logic.settings import TimingConfig


def parse_string_list(value: str | list[str]) -> list[str]:
    """Parse a list from a JSON array string, a comma-separated string, or a list.

    Raises ValueError for empty values or malformed JSON.
    """
    if isinstance(value, list):
        parsed: object = value
    else:
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
        else:
            parsed = [item.strip() for item in stripped.split(",") if item.strip()]

    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise ValueError("Value must be a list of strings")
    if not parsed:
        raise ValueError("String list value must not be empty")
    return parsed


class DuelServerSettings(BaseSettings):
    model_config = {"env_prefix": "DUEL_"}

    # NoDecode hands the raw env string to the validator so CSV works too
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]
    max_rooms: int = Field(default=1000, ge=1)
    log_dir: str | None = None
    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=8000, ge=1, le=65535)

    start_delay_seconds: float = Field(default=0.5, ge=0)
    reconnect_grace_seconds: float = Field(default=30, gt=0)
    countdown_interval_seconds: float = Field(default=1, gt=0)
    sweep_interval_seconds: float = Field(default=600, gt=0)
    empty_room_max_age_seconds: float = Field(default=4 * 60 * 60, gt=0)
    room_max_age_seconds: float = Field(default=8 * 60 * 60, gt=0)
    heartbeat_check_interval_seconds: float = Field(default=5, gt=0)
    heartbeat_timeout_seconds: float = Field(default=60, gt=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @property
    def timing(self) -> TimingConfig:
        return TimingConfig.from_settings(self)
