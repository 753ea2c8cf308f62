"""Monitor client liveness via application-level activity timestamps."""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable

from duel.messaging.protocol import ConnectionProtocol

HEARTBEAT_CHECK_INTERVAL = 5  # seconds between heartbeat checks
HEARTBEAT_TIMEOUT = 60  # seconds before disconnecting an idle client

logger = logging.getLogger(__name__)

# Resolves a connection id to its live connection, or None once it is gone.
ConnectionResolver = Callable[[str], ConnectionProtocol | None]


class HeartbeatMonitor:
    """Track per-connection activity and close connections that went quiet.

    Closing a connection makes its websocket handler exit, which routes the
    seat into the regular disconnect/grace-period flow.
    """

    def __init__(
        self,
        check_interval: float = HEARTBEAT_CHECK_INTERVAL,
        timeout: float = HEARTBEAT_TIMEOUT,
    ) -> None:
        self._check_interval = check_interval
        self._timeout = timeout
        self._last_seen: dict[str, float] = {}  # connection_id -> monotonic timestamp
        self._task: asyncio.Task[None] | None = None

    def record_connect(self, connection_id: str) -> None:
        self._last_seen[connection_id] = time.monotonic()

    def record_disconnect(self, connection_id: str) -> None:
        self._last_seen.pop(connection_id, None)

    def record_activity(self, connection_id: str) -> None:
        """Refresh the timestamp of a tracked connection (ping or any message)."""
        if connection_id in self._last_seen:
            self._last_seen[connection_id] = time.monotonic()

    def last_seen(self, connection_id: str) -> float | None:
        return self._last_seen.get(connection_id)

    def stale_connections(self, now: float | None = None) -> list[str]:
        now = time.monotonic() if now is None else now
        return [cid for cid, seen in list(self._last_seen.items()) if now - seen > self._timeout]

    def start(self, resolve: ConnectionResolver) -> None:
        """Start the check loop. Idempotent."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._check_loop(resolve))

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def check_once(self, resolve: ConnectionResolver) -> list[str]:
        """Close every stale connection once and return their ids."""
        closed = []
        for connection_id in self.stale_connections():
            connection = resolve(connection_id)
            # stop tracking first so a slow close is not retried on the next pass
            self._last_seen.pop(connection_id, None)
            if connection is None:
                continue
            logger.info("heartbeat timeout for %s, disconnecting", connection_id)
            with contextlib.suppress(RuntimeError, OSError):
                await connection.close(code=1000, reason="heartbeat_timeout")
            closed.append(connection_id)
        return closed

    async def _check_loop(self, resolve: ConnectionResolver) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            try:
                await self.check_once(resolve)
            except Exception:
                logger.exception("heartbeat check encountered an error")
