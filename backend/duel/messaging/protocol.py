from abc import ABC, abstractmethod
from typing import Any

from duel.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """One client transport as seen by the session layer.

    A connection id lives only as long as the transport. Seats outlive it:
    a reconnecting player arrives on a fresh connection with a new id.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))
