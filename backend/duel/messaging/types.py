"""Wire message models.

Inbound requests are validated into typed messages via a discriminated
union on ``type``. Outbound events serialize with camelCase aliases through
``to_wire``.
"""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from duel.logic.exceptions import ErrorCode
from duel.logic.types import (
    GameStateView,
    GuessRecord,
    GuessResult,
    PlayerView,
    RoomSnapshot,
)

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_NICKNAME_LENGTH = 32

RequestId = int | str | None


class ClientMessageType(StrEnum):
    CREATE_ROOM = "createRoom"
    JOIN_ROOM = "joinRoom"
    ATTEMPT_RECONNECT = "attemptReconnect"
    SUBMIT_SECRET = "submitSecret"
    MAKE_GUESS = "makeGuess"
    RESET_GAME = "resetGame"
    LEAVE_ROOM = "leaveRoom"
    PING = "ping"


class ServerMessageType(StrEnum):
    ACK = "ack"
    ROOM_UPDATE = "roomUpdate"
    GAME_START = "gameStart"
    TURN_CHANGE = "turnChange"
    GAME_END = "gameEnd"
    GAME_RESET = "gameReset"
    PLAYER_LEFT = "playerLeft"
    PLAYER_DISCONNECTED = "playerDisconnected"
    RECONNECT_COUNTDOWN = "reconnectCountdown"
    PLAYER_RECONNECTED = "playerReconnected"
    STOP_RECONNECT_COUNTDOWN = "stopReconnectCountdown"


def to_wire(message: BaseModel) -> dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True)


# --- Client -> server ---


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: RequestId = None


class _NicknameRequest(_Request):
    nickname: str | None = Field(default=None, min_length=1, max_length=MAX_NICKNAME_LENGTH)

    @field_validator("nickname")
    @classmethod
    def _validate_nickname(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("nickname must not contain control characters")
        return v


_ROOM_CODE_FIELD = Field(validation_alias="roomCode", min_length=1, max_length=16, pattern=r"^[A-Za-z0-9]+$")


class CreateRoomMessage(_NicknameRequest):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM


class JoinRoomMessage(_NicknameRequest):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    room_code: str = _ROOM_CODE_FIELD

    @field_validator("room_code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return v.upper()


class AttemptReconnectMessage(_Request):
    type: Literal[ClientMessageType.ATTEMPT_RECONNECT] = ClientMessageType.ATTEMPT_RECONNECT
    room_code: str = _ROOM_CODE_FIELD
    seat: int

    @field_validator("room_code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return v.upper()


class SubmitSecretMessage(_Request):
    type: Literal[ClientMessageType.SUBMIT_SECRET] = ClientMessageType.SUBMIT_SECRET
    # digit rules are enforced by the engine so the caller gets a domain error
    secret: str = Field(max_length=16)


class MakeGuessMessage(_Request):
    type: Literal[ClientMessageType.MAKE_GUESS] = ClientMessageType.MAKE_GUESS
    guess: str = Field(max_length=16)


class ResetGameMessage(_Request):
    type: Literal[ClientMessageType.RESET_GAME] = ClientMessageType.RESET_GAME


class LeaveRoomMessage(_Request):
    type: Literal[ClientMessageType.LEAVE_ROOM] = ClientMessageType.LEAVE_ROOM


class PingMessage(_Request):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    CreateRoomMessage
    | JoinRoomMessage
    | AttemptReconnectMessage
    | SubmitSecretMessage
    | MakeGuessMessage
    | ResetGameMessage
    | LeaveRoomMessage
    | PingMessage,
    Field(discriminator="type"),
]

_client_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage.

    Raises pydantic.ValidationError for unknown types or bad fields.
    """
    return _client_adapter.validate_python(data)


# --- Server -> client ---


class AckMessage(BaseModel):
    """Per-request acknowledgment. Extra payload fields are merged in by the router."""

    type: Literal[ServerMessageType.ACK] = ServerMessageType.ACK
    id: RequestId = None
    success: bool
    message: str | None = None
    code: ErrorCode | None = None

    def to_wire(self, payload: BaseModel | None = None) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if payload is not None:
            data.update(to_wire(payload))
        return data


class RoomJoinedResult(BaseModel):
    room_code: str = Field(serialization_alias="roomCode")
    seat: int


class GuessOutcome(BaseModel):
    result: GuessResult
    is_win: bool = Field(serialization_alias="isWin")


class RoomUpdateMessage(RoomSnapshot):
    type: Literal[ServerMessageType.ROOM_UPDATE] = ServerMessageType.ROOM_UPDATE


class GameStartMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_START] = ServerMessageType.GAME_START
    current_player: int = Field(serialization_alias="currentPlayer")
    started_at: datetime | None = Field(serialization_alias="startedAt")


class TurnChangeMessage(BaseModel):
    type: Literal[ServerMessageType.TURN_CHANGE] = ServerMessageType.TURN_CHANGE
    current_player: int = Field(serialization_alias="currentPlayer")
    last_guess: GuessRecord = Field(serialization_alias="lastGuess")
    history: list[GuessRecord]


class GameEndMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_END] = ServerMessageType.GAME_END
    winner: int
    winner_name: str = Field(serialization_alias="winnerName")
    winning_guess: str | None = Field(default=None, serialization_alias="winningGuess")
    reason: str | None = None
    history: list[GuessRecord]


class GameResetMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_RESET] = ServerMessageType.GAME_RESET
    players: list[PlayerView]
    game_state: GameStateView = Field(serialization_alias="gameState")


class PlayerLeftMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYER_LEFT] = ServerMessageType.PLAYER_LEFT
    seat: int


class PlayerDisconnectedMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYER_DISCONNECTED] = ServerMessageType.PLAYER_DISCONNECTED
    seat: int
    reconnect_time_left: int = Field(serialization_alias="reconnectTimeLeft")


class ReconnectCountdownMessage(BaseModel):
    type: Literal[ServerMessageType.RECONNECT_COUNTDOWN] = ServerMessageType.RECONNECT_COUNTDOWN
    seat: int
    time_left: int = Field(serialization_alias="timeLeft")


class PlayerReconnectedMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYER_RECONNECTED] = ServerMessageType.PLAYER_RECONNECTED
    seat: int


class StopReconnectCountdownMessage(BaseModel):
    type: Literal[ServerMessageType.STOP_RECONNECT_COUNTDOWN] = ServerMessageType.STOP_RECONNECT_COUNTDOWN
    seat: int
