"""Shared broadcast utility for sending events to the connections of a room."""

import contextlib
from collections.abc import Iterable
from typing import Any

from duel.messaging.protocol import ConnectionProtocol


async def broadcast_to_connections(
    connections: Iterable[ConnectionProtocol],
    message: dict[str, Any],
    exclude_connection_id: str | None = None,
) -> None:
    """Send a message to every connection, skipping one if excluded.

    The iterable is snapshotted via list() so a disconnect that mutates the
    caller's registry while we yield on send_message cannot break iteration.
    Delivery is best-effort: a failed send never affects the others.
    """
    for connection in list(connections):
        if connection.connection_id != exclude_connection_id:
            with contextlib.suppress(RuntimeError, OSError):
                await connection.send_message(message)
