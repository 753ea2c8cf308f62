"""Typed domain exceptions for room and match rule violations.

Every rule violation raised by the session layer is a DuelError subclass.
MessageRouter catches DuelError at the action boundary and converts it into
a failed acknowledgment; anything else is treated as an internal failure.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_CODE = "invalid_code"
    ROOM_NOT_FOUND = "room_not_found"
    SEAT_NOT_FOUND = "seat_not_found"
    NOT_IN_ROOM = "not_in_room"
    SECRET_NOT_FOUND = "secret_not_found"
    ROOM_FULL = "room_full"
    ALREADY_STARTED = "already_started"
    ALREADY_IN_ROOM = "already_in_room"
    SEAT_OCCUPIED = "seat_occupied"
    NOT_STARTED = "not_started"
    NOT_YOUR_TURN = "not_your_turn"
    GAME_OVER = "game_over"
    AT_CAPACITY = "at_capacity"
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"


class DuelError(Exception):
    """Base exception for rule violations.

    Carries a machine-readable code alongside the human-readable message.
    """

    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class InvalidCodeError(DuelError):
    """Secret or guess is not exactly four distinct decimal digits."""

    default_code = ErrorCode.INVALID_CODE


class NotFoundError(DuelError):
    """Room, seat, binding or opponent secret is absent."""

    default_code = ErrorCode.ROOM_NOT_FOUND


class StateError(DuelError):
    """Action is not allowed in the current room or match state."""

    default_code = ErrorCode.NOT_STARTED


class InternalError(DuelError):
    """Unexpected server-side failure."""

    default_code = ErrorCode.INTERNAL_ERROR
