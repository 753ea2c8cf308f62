import asyncio
from typing import Any
from uuid import uuid4

from duel.messaging.encoder import decode
from duel.messaging.protocol import ConnectionProtocol


class MockConnection(ConnectionProtocol):
    """Connection double for session and router tests.

    Outbound frames are decoded on arrival so tests assert on dicts. Sending
    to a closed connection fails the same way a dropped socket would.
    """

    def __init__(self, connection_id: str | None = None) -> None:
        self._id = connection_id or f"mock-{uuid4().hex[:8]}"
        self._received: list[dict[str, Any]] = []
        self._pending: asyncio.Queue[bytes] = asyncio.Queue()
        self.close_code: int | None = None
        self.close_reason: str | None = None

    @property
    def connection_id(self) -> str:
        return self._id

    @property
    def is_closed(self) -> bool:
        return self.close_code is not None

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return list(self._received)

    def messages_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self._received if message.get("type") == message_type]

    def last_ack(self) -> dict[str, Any]:
        acks = self.messages_of_type("ack")
        assert acks, f"{self._id} never received an ack"
        return acks[-1]

    def clear(self) -> None:
        self._received = []

    async def send_bytes(self, data: bytes) -> None:
        if self.is_closed:
            raise ConnectionError(f"{self._id} is closed")
        self._received.append(decode(data))

    async def receive_bytes(self) -> bytes:
        if self.is_closed:
            raise ConnectionError(f"{self._id} is closed")
        return await self._pending.get()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_code = code
        self.close_reason = reason
