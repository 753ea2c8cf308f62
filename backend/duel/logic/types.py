"""Pydantic models for guess results and the public room views.

Field names are snake_case in Python; serialization aliases carry the
camelCase names clients see on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class GuessResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    correct_position: int = Field(ge=0, le=4, serialization_alias="correctPosition")
    correct_number: int = Field(ge=0, le=4, serialization_alias="correctNumber")


class GuessRecord(BaseModel):
    """One entry of the match history."""

    model_config = ConfigDict(frozen=True)

    seat: int
    player_name: str = Field(serialization_alias="playerName")
    guess: str
    result: GuessResult
    is_win: bool = Field(serialization_alias="isWin")
    timestamp: datetime


class PlayerView(BaseModel):
    """Seat info visible to both players. Never carries a secret."""

    seat: int
    nickname: str
    ready: bool
    connected: bool
    temp_disconnected: bool = Field(serialization_alias="tempDisconnected")


class GameStateView(BaseModel):
    """Match state visible to both players. Never carries a secret."""

    started: bool
    current_player: int = Field(serialization_alias="currentPlayer")
    history: list[GuessRecord]
    winner: int | None = None
    winning_guess: str | None = Field(default=None, serialization_alias="winningGuess")
    started_at: datetime | None = Field(default=None, serialization_alias="startedAt")


class RoomSnapshot(BaseModel):
    room_code: str = Field(serialization_alias="roomCode")
    players: list[PlayerView]
    game_state: GameStateView = Field(serialization_alias="gameState")


class ReconnectionSnapshot(BaseModel):
    """State handed back to a reconnecting seat: its own secret only."""

    room_code: str = Field(serialization_alias="roomCode")
    seat: int
    game_state: GameStateView = Field(serialization_alias="gameState")
    players: list[PlayerView]
    my_secret: str | None = Field(default=None, serialization_alias="mySecret")


class RoomInfo(BaseModel):
    """Room summary for the HTTP listing."""

    code: str
    players: int
    connected: int
    started: bool
    created_at: datetime = Field(serialization_alias="createdAt")
