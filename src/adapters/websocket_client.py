import asyncio
import logging
from collections.abc import AsyncIterator

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake, InvalidURI

from domain.errors import ChannelLost

logger = logging.getLogger(__name__)


class WebSocketConnection:
    def __init__(self, connection: ClientConnection) -> None:
        self._connection = connection

    async def send(self, text: str) -> None:
        try:
            await self._connection.send(text)
        except ConnectionClosed as exc:
            raise ChannelLost(f"Connection closed: {exc}") from exc

    async def messages(self) -> AsyncIterator[str]:
        try:
            async for message in self._connection:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosedError as exc:
            logger.warning("Connection dropped: %s", exc)

    async def close(self) -> None:
        await self._connection.close()


class WebSocketConnector:
    def __init__(self, open_timeout: float = 10.0, ping_interval: float = 30.0, ping_timeout: float = 30.0) -> None:
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout

    async def connect(self, url: str) -> WebSocketConnection:
        try:
            connection = await connect(
                url,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as exc:
            raise ChannelLost(f"Cannot connect to {url}: {exc}") from exc
        return WebSocketConnection(connection)
