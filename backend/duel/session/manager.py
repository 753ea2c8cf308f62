from __future__ import annotations

import asyncio
import math
import time
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

from duel.logic.exceptions import ErrorCode, NotFoundError, StateError
from duel.logic.settings import FORFEIT_REASON_TIMEOUT, TimingConfig
from duel.messaging.types import (
    AckMessage,
    GameEndMessage,
    GameResetMessage,
    GameStartMessage,
    GuessOutcome,
    PlayerDisconnectedMessage,
    PlayerLeftMessage,
    PlayerReconnectedMessage,
    ReconnectCountdownMessage,
    RequestId,
    RoomJoinedResult,
    RoomUpdateMessage,
    StopReconnectCountdownMessage,
    TurnChangeMessage,
    to_wire,
)
from duel.session.broadcast import broadcast_to_connections
from duel.session.heartbeat import HeartbeatMonitor
from duel.session.models import utc_now
from duel.session.registry import RoomRegistry

if TYPE_CHECKING:
    from duel.messaging.protocol import ConnectionProtocol
    from duel.session.models import PlayerState
    from duel.session.room import Room

logger = structlog.get_logger()


class SessionManager:
    """Bind transient connections to durable (room, seat) identities.

    Every client action resolves the caller's room through the connection
    binding, mutates the Room synchronously, acknowledges the caller and
    then broadcasts to the room. The disconnect flow keeps a seat reserved
    for the grace period and forfeits the match if it is never reclaimed.
    """

    def __init__(self, timing: TimingConfig | None = None, max_rooms: int = 0) -> None:
        self._timing = timing or TimingConfig()
        self._registry = RoomRegistry(self._timing, max_rooms=max_rooms)
        self._heartbeat = HeartbeatMonitor(
            check_interval=self._timing.heartbeat_check_interval_seconds,
            timeout=self._timing.heartbeat_timeout_seconds,
        )
        self._connections: dict[str, ConnectionProtocol] = {}
        self._bindings: dict[str, str] = {}  # connection_id -> room code
        self._started_at = time.monotonic()

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started_at

    def room_code_of(self, connection_id: str) -> str | None:
        return self._bindings.get(connection_id)

    # --- Lifecycle ---

    def start(self) -> None:
        self._registry.start_sweeper()
        self._heartbeat.start(self._connections.get)

    async def shutdown(self) -> None:
        """Stop the background loops and cancel every room timer."""
        await self._registry.stop_sweeper()
        await self._heartbeat.stop()
        self._registry.clear()
        self._bindings.clear()
        logger.info("session manager shut down")

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection
        self._heartbeat.record_connect(connection.connection_id)

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)
        self._heartbeat.record_disconnect(connection.connection_id)

    def record_activity(self, connection: ConnectionProtocol) -> None:
        self._heartbeat.record_activity(connection.connection_id)

    # --- Room actions ---

    async def create_room(
        self,
        connection: ConnectionProtocol,
        nickname: str | None = None,
        request_id: RequestId = None,
    ) -> None:
        self._require_unbound(connection)
        room = self._registry.create()
        player = room.join(connection.connection_id, nickname)
        self._bindings[connection.connection_id] = room.code
        structlog.contextvars.bind_contextvars(room_code=room.code, seat=player.seat)
        logger.info("room created by player")

        await self._ack(connection, request_id, RoomJoinedResult(room_code=room.code, seat=player.seat))
        await self._broadcast_room_update(room)

    async def join_room(
        self,
        connection: ConnectionProtocol,
        room_code: str,
        nickname: str | None = None,
        request_id: RequestId = None,
    ) -> None:
        self._require_unbound(connection)
        room = self._require_room(room_code)
        player = room.join(connection.connection_id, nickname)
        self._bindings[connection.connection_id] = room.code
        structlog.contextvars.bind_contextvars(room_code=room.code, seat=player.seat)
        logger.info("player joined room")

        await self._ack(connection, request_id, RoomJoinedResult(room_code=room.code, seat=player.seat))
        await self._broadcast_room_update(room)

    async def submit_secret(
        self,
        connection: ConnectionProtocol,
        secret: str,
        request_id: RequestId = None,
    ) -> None:
        room = self._room_for(connection)
        outcome = room.submit_secret(connection.connection_id, secret)
        if not outcome.accepted:
            await self._ack(connection, request_id, message="Secret already submitted")
            return

        logger.info("secret submitted", room_code=room.code, all_ready=outcome.all_ready)
        if outcome.all_ready:
            room.timers.schedule_start(self._timing.start_delay_seconds, partial(self._start_game, room.code))
        await self._ack(connection, request_id, message="Secret accepted")
        await self._broadcast_room_update(room)

    async def make_guess(
        self,
        connection: ConnectionProtocol,
        guess: str,
        request_id: RequestId = None,
    ) -> None:
        room = self._room_for(connection)
        record = room.make_guess(connection.connection_id, guess)
        logger.info(
            "guess made",
            room_code=room.code,
            seat=record.seat,
            correct_position=record.result.correct_position,
            correct_number=record.result.correct_number,
        )

        await self._ack(connection, request_id, GuessOutcome(result=record.result, is_win=record.is_win))
        if record.is_win:
            logger.info("match won", room_code=room.code, winner=record.seat)
            message: BaseModel = GameEndMessage(
                winner=record.seat,
                winner_name=record.player_name,
                winning_guess=record.guess,
                history=room.game.history,
            )
        else:
            message = TurnChangeMessage(
                current_player=room.game.current_player,
                last_guess=record,
                history=room.game.history,
            )
        await self._broadcast(room, to_wire(message))

    async def reset_game(self, connection: ConnectionProtocol) -> None:
        room = self._bound_room(connection)
        if room is None:
            return
        room.reset()
        logger.info("game reset", room_code=room.code)
        await self._broadcast(
            room,
            to_wire(GameResetMessage(players=room.players_view(), game_state=room.game_view())),
        )
        # reset cancelled every timer; a seat still away gets a fresh window
        for player in list(room.seats.values()):
            if player.is_pending:
                await self._start_grace_period(room, player)

    async def leave_room(self, connection: ConnectionProtocol) -> None:
        room = self._bound_room(connection)
        self._bindings.pop(connection.connection_id, None)
        if room is None:
            return
        player = room.leave(connection.connection_id)
        logger.info("player left room", room_code=room.code, seat=player.seat)

        if room.is_empty:
            self._registry.remove(room.code)
            return
        await self._broadcast(room, to_wire(PlayerLeftMessage(seat=player.seat)))
        await self._broadcast_room_update(room)

    async def ping(self, connection: ConnectionProtocol, request_id: RequestId = None) -> None:
        """Refresh liveness for the connection and its seat, then answer pong."""
        self._heartbeat.record_activity(connection.connection_id)
        room = self._bound_room(connection)
        if room is not None:
            player = room.player_for(connection.connection_id)
            if player is not None:
                player.last_seen = utc_now()
        await self._ack(connection, request_id, message="pong")

    # --- Reconnection ---

    async def reconnect(
        self,
        connection: ConnectionProtocol,
        room_code: str,
        seat: int,
        request_id: RequestId = None,
    ) -> None:
        """Rebind a seat to a new connection. A failed attempt mutates nothing."""
        room = self._require_room(room_code)
        player = room.seats.get(seat)
        if player is None:
            raise NotFoundError("Seat not found", ErrorCode.SEAT_NOT_FOUND)

        own_seat = player.connection_id == connection.connection_id
        if not own_seat and connection.connection_id in self._bindings:
            raise StateError("Leave your current room first", ErrorCode.ALREADY_IN_ROOM)
        # a live seat is only freed by its connection dropping or the heartbeat closing it
        if not own_seat and player.connected:
            raise StateError("Seat is still connected", ErrorCode.SEAT_OCCUPIED)

        previous_id = player.connection_id
        room.rebind(seat, connection.connection_id)
        self._bindings.pop(previous_id, None)
        self._bindings[connection.connection_id] = room.code

        structlog.contextvars.bind_contextvars(room_code=room.code, seat=seat)
        logger.info("player reconnected")

        await self._ack(connection, request_id, room.reconnection_snapshot(seat))
        for message in (PlayerReconnectedMessage(seat=seat), StopReconnectCountdownMessage(seat=seat)):
            await self._broadcast(room, to_wire(message), exclude_connection_id=connection.connection_id)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Start the grace period for the caller's seat. Stale connections are a no-op."""
        room_code = self._bindings.pop(connection.connection_id, None)
        if room_code is None:
            return
        room = self._registry.get(room_code)
        if room is None:
            return
        player = room.player_for(connection.connection_id)
        if player is None:
            return

        room.mark_disconnected(player.seat)
        logger.info("player disconnected", room_code=room_code, seat=player.seat)
        await self._start_grace_period(room, player)

    async def _start_grace_period(self, room: Room, player: PlayerState) -> None:
        await self._broadcast(
            room,
            to_wire(
                PlayerDisconnectedMessage(
                    seat=player.seat,
                    reconnect_time_left=math.ceil(self._timing.reconnect_grace_seconds),
                ),
            ),
        )
        room.timers.start_seat_timer(player.seat, partial(self._run_grace_period, room.code, player.seat, player))
        logger.info("grace period started", room_code=room.code, seat=player.seat)

    def _seat_still_pending(self, room_code: str, seat: int, player: PlayerState) -> Room | None:
        """Return the room if the seat is still waiting on this grace timer."""
        room = self._registry.get(room_code)
        if room is None or room.seats.get(seat) is not player:
            return None
        if not player.is_pending or not room.timers.is_current(seat):
            return None
        return room

    async def _run_grace_period(self, room_code: str, seat: int, player: PlayerState) -> None:
        interval = self._timing.countdown_interval_seconds
        ticks = self._timing.countdown_ticks
        try:
            for remaining in range(ticks - 1, 0, -1):
                await asyncio.sleep(interval)
                room = self._seat_still_pending(room_code, seat, player)
                if room is None:
                    return
                await self._broadcast(
                    room,
                    to_wire(ReconnectCountdownMessage(seat=seat, time_left=math.ceil(remaining * interval))),
                )
            await asyncio.sleep(interval)
            await self._expire_seat(room_code, seat, player)
        finally:
            room = self._registry.get(room_code)
            if room is not None:
                room.timers.finish_seat(seat)

    async def _expire_seat(self, room_code: str, seat: int, player: PlayerState) -> None:
        # a reconnect may have landed between the last tick and now
        room = self._seat_still_pending(room_code, seat, player)
        if room is None:
            return

        winner = room.expire(seat)
        logger.info("grace period expired, seat removed", room_code=room_code, seat=seat)

        if room.is_empty:
            self._registry.remove(room_code)
            return
        if winner is not None:
            logger.info("match forfeited", room_code=room_code, winner=winner.seat)
            await self._broadcast(
                room,
                to_wire(
                    GameEndMessage(
                        winner=winner.seat,
                        winner_name=winner.nickname,
                        reason=FORFEIT_REASON_TIMEOUT,
                        history=room.game.history,
                    ),
                ),
            )
            return
        await self._broadcast(room, to_wire(PlayerLeftMessage(seat=seat)))
        await self._broadcast_room_update(room)

    # --- Game start ---

    async def _start_game(self, room_code: str) -> None:
        room = self._registry.get(room_code)
        if room is None or not room.start():
            logger.debug("game start skipped, room changed", room_code=room_code)
            return
        logger.info("game started", room_code=room_code)
        await self._broadcast(
            room,
            to_wire(GameStartMessage(current_player=room.game.current_player, started_at=room.game.started_at)),
        )

    # --- Internal helpers ---

    def _require_unbound(self, connection: ConnectionProtocol) -> None:
        if connection.connection_id in self._bindings:
            raise StateError("Leave your current room first", ErrorCode.ALREADY_IN_ROOM)

    def _require_room(self, room_code: str) -> Room:
        room = self._registry.get(room_code)
        if room is None:
            raise NotFoundError("Room not found", ErrorCode.ROOM_NOT_FOUND)
        return room

    def _bound_room(self, connection: ConnectionProtocol) -> Room | None:
        room_code = self._bindings.get(connection.connection_id)
        if room_code is None:
            return None
        return self._registry.get(room_code)

    def _room_for(self, connection: ConnectionProtocol) -> Room:
        room = self._bound_room(connection)
        if room is None:
            raise NotFoundError("Not in a room", ErrorCode.NOT_IN_ROOM)
        return room

    async def _ack(
        self,
        connection: ConnectionProtocol,
        request_id: RequestId,
        payload: BaseModel | None = None,
        *,
        message: str | None = None,
    ) -> None:
        # the room is already updated; a dead caller must not stop the broadcasts
        ack = AckMessage(id=request_id, success=True, message=message)
        try:
            await connection.send_message(ack.to_wire(payload))
        except (RuntimeError, OSError) as e:
            logger.debug("ack not delivered", connection_id=connection.connection_id, error=str(e))

    async def _broadcast_room_update(self, room: Room) -> None:
        snapshot = room.snapshot()
        message = RoomUpdateMessage(
            room_code=snapshot.room_code,
            players=snapshot.players,
            game_state=snapshot.game_state,
        )
        await self._broadcast(room, to_wire(message))

    async def _broadcast(
        self,
        room: Room,
        message: dict[str, Any],
        exclude_connection_id: str | None = None,
    ) -> None:
        connections = [self._connections[cid] for cid in room.connection_ids if cid in self._connections]
        await broadcast_to_connections(connections, message, exclude_connection_id=exclude_connection_id)
