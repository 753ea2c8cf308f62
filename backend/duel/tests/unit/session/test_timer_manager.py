"""Unit tests for RoomTimers in isolation."""

import asyncio

import pytest

from duel.session.timer_manager import RoomTimers


@pytest.fixture
def timers():
    return RoomTimers("ROOM01")


async def _sleep_forever() -> None:
    await asyncio.sleep(3600)


class TestSeatTimers:
    async def test_start_registers_pending_seat(self, timers):
        timers.start_seat_timer(1, _sleep_forever)
        assert timers.has_seat_timer(1)
        assert timers.pending_seats == [1]
        timers.cancel_all()

    async def test_restart_replaces_previous_timer(self, timers):
        first = timers.start_seat_timer(1, _sleep_forever)
        second = timers.start_seat_timer(1, _sleep_forever)
        await asyncio.sleep(0)
        assert first.cancelled() or first.done()
        assert not second.done()
        assert timers.pending_seats == [1]
        timers.cancel_all()

    async def test_cancel_seat_reports_pending(self, timers):
        timers.start_seat_timer(2, _sleep_forever)
        assert timers.cancel_seat(2) is True
        assert timers.cancel_seat(2) is False
        assert not timers.has_seat_timer(2)

    async def test_callback_runs_and_entry_is_dropped(self, timers):
        fired = []

        async def run() -> None:
            fired.append(timers.is_current(1))
            timers.finish_seat(1)

        task = timers.start_seat_timer(1, run)
        await task
        assert fired == [True]
        assert not timers.has_seat_timer(1)

    async def test_callback_cannot_cancel_itself(self, timers):
        results = []

        async def run() -> None:
            results.append(timers.cancel_seat(1))
            await asyncio.sleep(0)
            results.append("still running")

        await timers.start_seat_timer(1, run)
        assert results == [False, "still running"]

    async def test_callback_errors_are_logged_not_raised(self, timers, caplog):
        async def run() -> None:
            raise ValueError("boom")

        task = timers.start_seat_timer(1, run)
        await task
        assert not task.cancelled()
        assert "room timer callback failed" in caplog.text


class TestStartDebounce:
    async def test_fires_after_delay(self, timers):
        fired = asyncio.Event()

        async def on_fire() -> None:
            fired.set()

        timers.schedule_start(0.01, on_fire)
        assert timers.start_pending
        await asyncio.wait_for(fired.wait(), timeout=1)

    async def test_cancel_start_prevents_fire(self, timers):
        fired = []

        async def on_fire() -> None:
            fired.append(True)

        timers.schedule_start(0.01, on_fire)
        assert timers.cancel_start() is True
        await asyncio.sleep(0.03)
        assert fired == []
        assert not timers.start_pending

    async def test_cancel_all_stops_everything(self, timers):
        timers.start_seat_timer(1, _sleep_forever)
        timers.start_seat_timer(2, _sleep_forever)
        timers.schedule_start(10, _sleep_forever)
        timers.cancel_all()
        await asyncio.sleep(0)
        assert timers.pending_seats == []
        assert not timers.start_pending
