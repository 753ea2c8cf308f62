"""Per-room timer table: one grace timer per seat plus the start debounce."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()


class RoomTimers:
    """Own every background timer of a single room.

    Reconnection, reset, leave and room teardown all cancel through this
    table, so a seat never has more than one outstanding grace timer and no
    task outlives its room. Callbacks still re-validate room state when they
    fire: cancellation only stops tasks that have not started running their
    callback yet.
    """

    def __init__(self, room_code: str) -> None:
        self._room_code = room_code
        self._seat_tasks: dict[int, asyncio.Task[None]] = {}
        self._start_task: asyncio.Task[None] | None = None

    @property
    def pending_seats(self) -> list[int]:
        return sorted(seat for seat, task in self._seat_tasks.items() if not task.done())

    @property
    def start_pending(self) -> bool:
        return self._start_task is not None and not self._start_task.done()

    def has_seat_timer(self, seat: int) -> bool:
        task = self._seat_tasks.get(seat)
        return task is not None and not task.done()

    def is_current(self, seat: int) -> bool:
        """True when the running task is the registered timer for the seat."""
        return self._seat_tasks.get(seat) is asyncio.current_task()

    def start_seat_timer(self, seat: int, run: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        """Start the grace timer for a seat, replacing any earlier one."""
        self.cancel_seat(seat)
        task = asyncio.create_task(self._guard(run, seat=seat))
        self._seat_tasks[seat] = task
        return task

    def schedule_start(self, delay: float, on_fire: Callable[[], Awaitable[None]]) -> None:
        """Debounce the match start; a later call replaces a pending one."""
        self.cancel_start()

        async def _delayed() -> None:
            await asyncio.sleep(delay)
            await on_fire()

        self._start_task = asyncio.create_task(self._guard(_delayed, seat=None))

    def cancel_seat(self, seat: int) -> bool:
        """Cancel and forget the seat's timer. Returns True if one was pending."""
        task = self._seat_tasks.pop(seat, None)
        return self._cancel(task)

    def cancel_start(self) -> bool:
        task, self._start_task = self._start_task, None
        return self._cancel(task)

    def cancel_all(self) -> None:
        for seat in list(self._seat_tasks):
            self.cancel_seat(seat)
        self.cancel_start()

    def finish_seat(self, seat: int) -> None:
        """Drop the table entry of a timer that ran to completion."""
        if self.is_current(seat):
            self._seat_tasks.pop(seat, None)

    @staticmethod
    def _cancel(task: asyncio.Task[None] | None) -> bool:
        if task is None or task.done():
            return False
        # a callback that tears its own room down must not abort itself
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    async def _guard(self, run: Callable[[], Awaitable[None]], *, seat: int | None) -> None:
        try:
            await run()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("room timer callback failed", room_code=self._room_code, seat=seat)
