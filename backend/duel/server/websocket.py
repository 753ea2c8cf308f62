from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from duel.logic.exceptions import ErrorCode
from duel.messaging.encoder import DecodeError, decode
from duel.messaging.protocol import ConnectionProtocol
from duel.messaging.router import request_id_of
from duel.server.rate_limit import SlidingWindowLimiter

logger = structlog.get_logger()

if TYPE_CHECKING:
    from duel.messaging.router import MessageRouter

# A turn-based game needs a handful of frames per second at most.
_RATE_LIMIT_PER_SECOND = 10

# Consecutive undecodable frames tolerated before the socket is closed
_MAX_DECODE_ERRORS = 5
_CLOSE_TOO_MANY_DECODE_ERRORS = 4004


class WebSocketConnection(ConnectionProtocol):
    """ConnectionProtocol over a Starlette WebSocket carrying binary frames."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._ws = websocket
        self._id = connection_id or uuid4().hex

    @property
    def connection_id(self) -> str:
        return self._id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._ws.send_bytes(data)
        except WebSocketDisconnect as e:
            raise ConnectionError(f"client went away (code {e.code})") from e

    async def receive_bytes(self) -> bytes:
        try:
            return await self._ws.receive_bytes()
        except WebSocketDisconnect as e:
            raise ConnectionError(f"client went away (code {e.code})") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        # closing twice, or after the client left, is not an error
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._ws.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    try:
        await _serve(connection, router)
    except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
        logger.debug("websocket receive loop ended", reason=str(e))
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()


async def _serve(connection: WebSocketConnection, router: MessageRouter) -> None:
    """Feed decoded frames to the router until the client leaves or is cut off."""
    limiter = SlidingWindowLimiter(limit=_RATE_LIMIT_PER_SECOND)
    strikes = 0
    while True:
        frame = await connection.receive_bytes()
        try:
            data = decode(frame)
        except DecodeError as e:
            strikes += 1
            logger.warning("undecodable frame", error=str(e), strikes=strikes)
            await router.send_error(connection, None, ErrorCode.INVALID_MESSAGE, "Malformed frame")
            if strikes >= _MAX_DECODE_ERRORS:
                logger.info("closing after repeated undecodable frames")
                await connection.close(code=_CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                return
            continue

        strikes = 0
        if limiter.allow():
            await router.handle_message(connection, data)
        else:
            await router.send_error(connection, request_id_of(data), ErrorCode.RATE_LIMITED, "Too many messages")
