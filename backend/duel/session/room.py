"""Room model and the match state machine.

Lobby -> Starting (both ready, start debounce pending) -> InProgress ->
Finished -> Lobby (explicit reset). Every method mutates synchronously and
raises a DuelError subclass on a rule violation; broadcasting is left to
SessionManager.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import NamedTuple

from duel.logic.engine import check_guess, is_winning, validate_code
from duel.logic.exceptions import ErrorCode, NotFoundError, StateError
from duel.logic.settings import FIRST_SEAT, NUM_SEATS
from duel.logic.types import (
    GameStateView,
    GuessRecord,
    PlayerView,
    ReconnectionSnapshot,
    RoomInfo,
    RoomSnapshot,
)
from duel.session.models import GameState, PlayerState, utc_now
from duel.session.timer_manager import RoomTimers

ALL_SEATS = tuple(range(FIRST_SEAT, FIRST_SEAT + NUM_SEATS))


class RoomPhase(StrEnum):
    LOBBY = "lobby"
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class SecretOutcome(NamedTuple):
    accepted: bool  # False when the seat was already ready
    all_ready: bool


def default_nickname(seat: int) -> str:
    return f"Player {seat}"


@dataclass
class Room:
    """One match container: up to two seats and one game state.

    Seats, secrets and history are keyed by seat number, never by the
    transient connection id.
    """

    code: str
    seats: dict[int, PlayerState] = field(default_factory=dict)  # seat -> PlayerState
    game: GameState = field(default_factory=GameState)
    created_at: float = field(default_factory=time.monotonic)
    created_on: datetime = field(default_factory=utc_now)
    timers: RoomTimers = field(init=False)

    def __post_init__(self) -> None:
        self.timers = RoomTimers(self.code)

    # --- Derived state ---

    @property
    def phase(self) -> RoomPhase:
        if self.game.finished:
            return RoomPhase.FINISHED
        if self.game.started:
            return RoomPhase.IN_PROGRESS
        if self.all_ready:
            return RoomPhase.STARTING
        return RoomPhase.LOBBY

    @property
    def player_count(self) -> int:
        return len(self.seats)

    @property
    def connected_count(self) -> int:
        return sum(1 for p in self.seats.values() if p.connected)

    @property
    def is_empty(self) -> bool:
        return not self.seats

    @property
    def is_full(self) -> bool:
        return self.player_count >= NUM_SEATS

    @property
    def all_ready(self) -> bool:
        return self.is_full and all(p.ready for p in self.seats.values())

    @property
    def connection_ids(self) -> list[str]:
        """Connections currently joined to this room (connected seats only)."""
        return [p.connection_id for p in self.seats.values() if p.connected]

    def age_seconds(self, now: float | None = None) -> float:
        return (now if now is not None else time.monotonic()) - self.created_at

    def player_for(self, connection_id: str) -> PlayerState | None:
        for player in self.seats.values():
            if player.connection_id == connection_id:
                return player
        return None

    def require_player(self, connection_id: str) -> PlayerState:
        player = self.player_for(connection_id)
        if player is None:
            raise NotFoundError("Player not found in this room", ErrorCode.SEAT_NOT_FOUND)
        return player

    def opponent_of(self, seat: int) -> PlayerState | None:
        for other_seat, player in self.seats.items():
            if other_seat != seat:
                return player
        return None

    # --- Lobby ---

    def join(self, connection_id: str, nickname: str | None = None) -> PlayerState:
        """Seat a connection. The first seat goes to the creator."""
        if self.game.started:
            raise StateError("Game already started", ErrorCode.ALREADY_STARTED)
        if self.is_full:
            raise StateError("Room is full", ErrorCode.ROOM_FULL)
        if self.player_for(connection_id) is not None:
            raise StateError("Already seated in this room", ErrorCode.ALREADY_IN_ROOM)

        seat = next(s for s in ALL_SEATS if s not in self.seats)
        player = PlayerState(
            connection_id=connection_id,
            seat=seat,
            nickname=nickname or default_nickname(seat),
        )
        self.seats[seat] = player
        return player

    def submit_secret(self, connection_id: str, secret: str) -> SecretOutcome:
        player = self.require_player(connection_id)
        if player.ready:
            return SecretOutcome(accepted=False, all_ready=self.all_ready)

        self.game.secrets[player.seat] = validate_code(secret)
        player.ready = True
        return SecretOutcome(accepted=True, all_ready=self.all_ready)

    def start(self) -> bool:
        """Enter InProgress. Returns False if the room changed since scheduling."""
        if self.game.started or not self.all_ready:
            return False
        self.game.started = True
        self.game.current_player = FIRST_SEAT
        self.game.history = []
        self.game.started_at = utc_now()
        return True

    # --- Match ---

    def make_guess(self, connection_id: str, guess: str) -> GuessRecord:
        player = self.require_player(connection_id)
        if not self.game.started:
            raise StateError("Game has not started", ErrorCode.NOT_STARTED)
        if self.game.finished:
            raise StateError("Game is over", ErrorCode.GAME_OVER)
        if player.seat != self.game.current_player:
            raise StateError("Not your turn", ErrorCode.NOT_YOUR_TURN)
        validate_code(guess)

        opponent = self.opponent_of(player.seat)
        secret = self.game.secrets.get(opponent.seat) if opponent is not None else None
        if secret is None:
            raise NotFoundError("Opponent secret not found", ErrorCode.SECRET_NOT_FOUND)

        result = check_guess(guess, secret)
        record = GuessRecord(
            seat=player.seat,
            player_name=player.nickname,
            guess=guess,
            result=result,
            is_win=is_winning(result),
            timestamp=utc_now(),
        )
        self.game.history.append(record)

        if record.is_win:
            self.game.winner = player.seat
            self.game.winning_guess = guess
        else:
            self.game.current_player = opponent.seat
        return record

    def reset(self) -> None:
        """Return to a fresh Lobby, keeping both seats."""
        self.game = GameState()
        for player in self.seats.values():
            player.ready = False
        self.timers.cancel_all()

    # --- Departures ---

    def leave(self, connection_id: str) -> PlayerState:
        """Remove the caller's seat. No forfeit is declared during a match."""
        player = self.require_player(connection_id)
        self._remove_seat(player.seat)
        return player

    def expire(self, seat: int) -> PlayerState | None:
        """Remove a seat whose grace period ran out.

        Returns the remaining seat when it wins by forfeit: a match was in
        progress and exactly one connected seat is left.
        """
        in_progress = self.phase == RoomPhase.IN_PROGRESS
        self._remove_seat(seat)
        if not in_progress or self.connected_count != 1:
            return None
        winner = next(p for p in self.seats.values() if p.connected)
        self.game.winner = winner.seat
        return winner

    def _remove_seat(self, seat: int) -> None:
        self.seats.pop(seat, None)
        self.game.secrets.pop(seat, None)
        self.timers.cancel_seat(seat)
        if not self.game.started:
            self.timers.cancel_start()
            self.game = GameState()
            for remaining in self.seats.values():
                remaining.ready = False

    # --- Connection binding ---

    def mark_disconnected(self, seat: int) -> PlayerState:
        player = self.seats[seat]
        player.connected = False
        player.temp_disconnected = True
        player.last_seen = utc_now()
        return player

    def rebind(self, seat: int, connection_id: str) -> PlayerState:
        """Attach a new connection to an existing seat and stop its grace timer."""
        player = self.seats.get(seat)
        if player is None:
            raise NotFoundError("Seat not found", ErrorCode.SEAT_NOT_FOUND)
        now = utc_now()
        player.connection_id = connection_id
        player.connected = True
        player.temp_disconnected = False
        player.last_seen = now
        player.reconnected_at = now
        self.timers.cancel_seat(seat)
        return player

    # --- Views ---

    def players_view(self) -> list[PlayerView]:
        return [self.seats[seat].view() for seat in sorted(self.seats)]

    def game_view(self) -> GameStateView:
        return GameStateView(
            started=self.game.started,
            current_player=self.game.current_player,
            history=list(self.game.history),
            winner=self.game.winner,
            winning_guess=self.game.winning_guess,
            started_at=self.game.started_at,
        )

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(room_code=self.code, players=self.players_view(), game_state=self.game_view())

    def reconnection_snapshot(self, seat: int) -> ReconnectionSnapshot:
        return ReconnectionSnapshot(
            room_code=self.code,
            seat=seat,
            game_state=self.game_view(),
            players=self.players_view(),
            my_secret=self.game.secrets.get(seat),
        )

    def info(self) -> RoomInfo:
        return RoomInfo(
            code=self.code,
            players=self.player_count,
            connected=self.connected_count,
            started=self.game.started,
            created_at=self.created_on,
        )
