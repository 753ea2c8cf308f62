"""Room table: code generation, lookup, removal and the periodic sweep."""

import asyncio
import contextlib
import logging
import random
import time

from duel.logic.exceptions import ErrorCode, InternalError, StateError
from duel.logic.settings import (
    MAX_ROOM_CODE_ATTEMPTS,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    TimingConfig,
)
from duel.logic.types import RoomInfo
from duel.session.room import Room

logger = logging.getLogger(__name__)


def generate_room_code() -> str:
    return "".join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


class RoomRegistry:
    """Own every live Room, keyed by its code.

    There is one registry per process; rooms never span processes.
    """

    def __init__(self, timing: TimingConfig | None = None, max_rooms: int = 0) -> None:
        self._timing = timing or TimingConfig()
        self._max_rooms = max_rooms
        self._rooms: dict[str, Room] = {}
        self._sweeper_task: asyncio.Task[None] | None = None

    # --- Public API ---

    def create(self) -> Room:
        """Register a new empty room under a fresh code."""
        if self._max_rooms and len(self._rooms) >= self._max_rooms:
            raise StateError("Server is at room capacity", ErrorCode.AT_CAPACITY)
        for _ in range(MAX_ROOM_CODE_ATTEMPTS):
            code = generate_room_code()
            if code not in self._rooms:
                room = Room(code=code)
                self._rooms[code] = room
                logger.info("room %s created", code)
                return room
        raise InternalError("Failed to generate a unique room code")

    def get(self, code: str) -> Room | None:
        return self._rooms.get(code)

    def remove(self, code: str) -> Room | None:
        room = self._rooms.pop(code, None)
        if room is not None:
            room.timers.cancel_all()
            logger.info("room %s removed", code)
        return room

    def __contains__(self, code: object) -> bool:
        return code in self._rooms

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def player_count(self) -> int:
        return sum(room.player_count for room in self._rooms.values())

    @property
    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def rooms_info(self) -> list[RoomInfo]:
        return [room.info() for room in self._rooms.values()]

    # --- Sweep ---

    def is_reclaimable(self, room: Room, now: float) -> bool:
        age = room.age_seconds(now)
        if age > self._timing.empty_room_max_age_seconds and room.player_count == 0:
            return True
        if room.connected_count == 0 and room.player_count == 0:
            return True
        # seats still in their grace period keep an old room alive only until the age cap
        return age > self._timing.room_max_age_seconds and room.connected_count == 0

    def sweep(self, now: float | None = None) -> list[str]:
        """Remove every reclaimable room and return the removed codes."""
        now = time.monotonic() if now is None else now
        expired = [room.code for room in list(self._rooms.values()) if self.is_reclaimable(room, now)]
        for code in expired:
            room = self._rooms.get(code)
            logger.info(
                "sweeping room %s (age %.0fs, players=%d)",
                code,
                room.age_seconds(now) if room else 0,
                room.player_count if room else 0,
            )
            self.remove(code)
        return expired

    def start_sweeper(self) -> None:
        """Start the periodic sweep task. Idempotent."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweeper_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None

    async def _sweeper_loop(self) -> None:
        while True:
            await asyncio.sleep(self._timing.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("room sweep encountered an error")

    def clear(self) -> None:
        """Drop every room and cancel all of their timers."""
        for code in list(self._rooms):
            self.remove(code)
