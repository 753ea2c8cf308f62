from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from duel.logic.exceptions import DuelError, ErrorCode
from duel.messaging.types import (
    AckMessage,
    AttemptReconnectMessage,
    ClientMessage,
    CreateRoomMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    MakeGuessMessage,
    PingMessage,
    RequestId,
    ResetGameMessage,
    SubmitSecretMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from duel.messaging.protocol import ConnectionProtocol
    from duel.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to SessionManager actions.

    Every failure is trapped here and answered with a failed ack, so a bad
    request never terminates the connection. Contains no transport code and
    can be tested with a mock connection.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        self._session_manager.record_activity(connection)
        request_id = request_id_of(raw_message)
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self.send_error(connection, request_id, ErrorCode.INVALID_MESSAGE, "Invalid message")
            return

        try:
            await self._dispatch(connection, message)
        except DuelError as e:
            logger.warning("%s rejected for %s: %s", message.type, connection.connection_id, e.message)
            await self.send_error(connection, message.id, e.code, e.message)
        except Exception:
            logger.exception("unexpected error handling %s for %s", message.type, connection.connection_id)
            await self.send_error(connection, message.id, ErrorCode.INTERNAL_ERROR, "Internal server error")

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> None:
        manager = self._session_manager
        if isinstance(message, CreateRoomMessage):
            await manager.create_room(connection, message.nickname, request_id=message.id)
        elif isinstance(message, JoinRoomMessage):
            await manager.join_room(connection, message.room_code, message.nickname, request_id=message.id)
        elif isinstance(message, AttemptReconnectMessage):
            await manager.reconnect(connection, message.room_code, message.seat, request_id=message.id)
        elif isinstance(message, SubmitSecretMessage):
            await manager.submit_secret(connection, message.secret, request_id=message.id)
        elif isinstance(message, MakeGuessMessage):
            await manager.make_guess(connection, message.guess, request_id=message.id)
        elif isinstance(message, ResetGameMessage):
            await manager.reset_game(connection)
        elif isinstance(message, LeaveRoomMessage):
            await manager.leave_room(connection)
        elif isinstance(message, PingMessage):
            await manager.ping(connection, request_id=message.id)

    @staticmethod
    async def send_error(
        connection: ConnectionProtocol,
        request_id: RequestId,
        code: ErrorCode,
        message: str,
    ) -> None:
        ack = AckMessage(id=request_id, success=False, code=code, message=message)
        try:
            await connection.send_message(ack.to_wire())
        except (RuntimeError, OSError) as e:
            logger.debug("error ack for %s not delivered: %s", connection.connection_id, e)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        try:
            await self._session_manager.handle_disconnect(connection)
        finally:
            self._session_manager.unregister_connection(connection)


def request_id_of(raw_message: dict[str, Any]) -> RequestId:
    """Best-effort request id for acks of messages that fail validation."""
    value = raw_message.get("id")
    return value if isinstance(value, int | str) and not isinstance(value, bool) else None
