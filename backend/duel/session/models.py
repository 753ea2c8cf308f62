from dataclasses import dataclass, field
from datetime import UTC, datetime

from duel.logic.settings import FIRST_SEAT
from duel.logic.types import GuessRecord, PlayerView


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class PlayerState:
    """A seat of a room and the connection currently bound to it.

    The seat number is the durable identity. connection_id is rebound on
    every successful reconnect.

    Lifecycle:
    - Created on create/join with connected=True
    - On transport loss: connected=False, temp_disconnected=True
    - On reconnect: connection_id rebound, flags restored
    - On leave or grace expiry: removed from the room
    """

    connection_id: str
    seat: int
    nickname: str
    ready: bool = False
    connected: bool = True
    temp_disconnected: bool = False
    last_seen: datetime = field(default_factory=utc_now)
    reconnected_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        """Inside the reconnect grace period."""
        return self.temp_disconnected and not self.connected

    def view(self) -> PlayerView:
        return PlayerView(
            seat=self.seat,
            nickname=self.nickname,
            ready=self.ready,
            connected=self.connected,
            temp_disconnected=self.temp_disconnected,
        )


@dataclass
class GameState:
    started: bool = False
    current_player: int = FIRST_SEAT
    secrets: dict[int, str] = field(default_factory=dict)  # seat -> secret
    history: list[GuessRecord] = field(default_factory=list)
    winner: int | None = None
    winning_guess: str | None = None
    started_at: datetime | None = None

    @property
    def finished(self) -> bool:
        return self.winner is not None
