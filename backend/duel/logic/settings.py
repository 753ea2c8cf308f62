"""Room constants and timing configuration."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from duel.server.settings import DuelServerSettings

NUM_SEATS = 2
FIRST_SEAT = 1
ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_ROOM_CODE_ATTEMPTS = 20
FORFEIT_REASON_TIMEOUT = "opponent_timeout"


class TimingConfig(BaseModel):
    """Durations (seconds) for every time-bounded room transition."""

    model_config = ConfigDict(frozen=True)

    start_delay_seconds: float = Field(default=0.5, ge=0)
    reconnect_grace_seconds: float = Field(default=30, gt=0)
    countdown_interval_seconds: float = Field(default=1, gt=0)
    sweep_interval_seconds: float = Field(default=600, gt=0)
    empty_room_max_age_seconds: float = Field(default=4 * 60 * 60, gt=0)
    room_max_age_seconds: float = Field(default=8 * 60 * 60, gt=0)
    heartbeat_check_interval_seconds: float = Field(default=5, gt=0)
    heartbeat_timeout_seconds: float = Field(default=60, gt=0)

    @property
    def countdown_ticks(self) -> int:
        """Number of countdown intervals that fit in the grace period."""
        return max(1, round(self.reconnect_grace_seconds / self.countdown_interval_seconds))

    @classmethod
    def from_settings(cls, settings: DuelServerSettings) -> TimingConfig:
        return cls(
            start_delay_seconds=settings.start_delay_seconds,
            reconnect_grace_seconds=settings.reconnect_grace_seconds,
            countdown_interval_seconds=settings.countdown_interval_seconds,
            sweep_interval_seconds=settings.sweep_interval_seconds,
            empty_room_max_age_seconds=settings.empty_room_max_age_seconds,
            room_max_age_seconds=settings.room_max_age_seconds,
            heartbeat_check_interval_seconds=settings.heartbeat_check_interval_seconds,
            heartbeat_timeout_seconds=settings.heartbeat_timeout_seconds,
        )
