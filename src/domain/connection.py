import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto

from domain.errors import ChannelLost, MaxReconnectAttemptsReached
from ports.channel import ChannelConnection, ChannelConnectorPort

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_BASE_DELAY = 2.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5


class ConnectionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    FAILED = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class TranscriptionMessage:
    text: str
    platform: str = ""
    timestamp: int = 0
    session_id: str = ""
    sequence: int = 0


class ConnectionManager:
    """Client side of the live channel.

    Reconnects with a linear-growth backoff (``base_delay * attempt``) only
    while a live session is intended, and never re-sends ``start_live`` on
    its own: ``on_reconnected`` tells the caller the channel is back so it can
    decide whether to resume.
    """

    def __init__(
        self,
        connector: ChannelConnectorPort,
        url: str,
        on_transcription: Callable[[TranscriptionMessage], None] | None = None,
        on_status: Callable[[str], None] | None = None,
        on_error: Callable[[str, str | None], None] | None = None,
        on_reconnected: Callable[[int], None] | None = None,
        base_delay: float = DEFAULT_RECONNECT_BASE_DELAY,
        max_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._connector = connector
        self._url = url
        self._on_transcription = on_transcription
        self._on_status = on_status
        self._on_error = on_error
        self._on_reconnected = on_reconnected
        self._base_delay = base_delay
        self._max_attempts = max_attempts
        self._sleep = sleep

        self._connection: ChannelConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._live = False
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def live(self) -> bool:
        return self._live

    def reconnect_delay(self, attempt: int) -> float:
        return self._base_delay * attempt

    async def connect(self) -> None:
        if self._state is ConnectionState.FAILED:
            raise MaxReconnectAttemptsReached(self._max_attempts)
        self._closing = False
        self._state = ConnectionState.CONNECTING
        try:
            self._connection = await self._connector.connect(self._url)
        except ChannelLost:
            self._state = ConnectionState.DISCONNECTED
            raise
        self._state = ConnectionState.CONNECTED
        self._attempts = 0
        logger.info("Connected to transcription service at %s", self._url)

    async def start_live(self, url: str, language: str) -> None:
        if self._connection is None:
            await self.connect()
        assert self._connection is not None
        self._live = True
        await self._connection.send(json.dumps({"type": "start_live", "url": url, "language": language}))
        logger.info("Live transcription requested for %s (%s)", url, language)

    async def stop_live(self) -> None:
        self._live = False
        if self._connection is None:
            return
        try:
            await self._connection.send(json.dumps({"type": "stop_live"}))
        except ChannelLost:
            logger.debug("Channel already gone while sending stop_live")

    async def close(self) -> None:
        self._closing = True
        self._live = False
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()
        self._state = ConnectionState.CLOSED

    async def run(self) -> None:
        while True:
            if self._connection is None:
                if self._closing:
                    return
                raise ChannelLost("Not connected")

            async for text in self._connection.messages():
                self._dispatch(text)

            self._connection = None
            if self._closing:
                self._state = ConnectionState.CLOSED
                return
            if not self._live:
                logger.info("Connection closed")
                self._state = ConnectionState.DISCONNECTED
                return
            await self._reconnect()

    async def _reconnect(self) -> None:
        self._state = ConnectionState.RECONNECTING
        while self._attempts < self._max_attempts:
            self._attempts += 1
            delay = self.reconnect_delay(self._attempts)
            logger.warning(
                "Connection lost. Attempting to reconnect in %.1fs (%d/%d)",
                delay,
                self._attempts,
                self._max_attempts,
            )
            await self._sleep(delay)
            if self._closing:
                return
            try:
                self._connection = await self._connector.connect(self._url)
            except ChannelLost as exc:
                logger.warning("Reconnect attempt %d failed: %s", self._attempts, exc)
                continue

            attempts, self._attempts = self._attempts, 0
            self._state = ConnectionState.CONNECTED
            logger.info("Reconnected after %d attempt(s)", attempts)
            if self._on_reconnected:
                self._on_reconnected(attempts)
            return

        self._state = ConnectionState.FAILED
        self._live = False
        logger.error("Maximum reconnection attempts reached (%d)", self._max_attempts)
        raise MaxReconnectAttemptsReached(self._max_attempts)

    def _dispatch(self, text: str) -> None:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Invalid message from server: %.200s", text)
            return
        if not isinstance(data, dict):
            logger.warning("Unexpected message from server: %.200s", text)
            return

        message_type = data.get("type")
        if message_type == "transcription":
            if self._on_transcription:
                self._on_transcription(
                    TranscriptionMessage(
                        text=data.get("text") or "",
                        platform=data.get("platform") or "",
                        timestamp=int(data.get("timestamp") or 0),
                        session_id=data.get("session_id") or "",
                        sequence=int(data.get("sequence") or 0),
                    )
                )
        elif message_type == "status":
            if _ends_session(data):
                self._live = False
            if self._on_status:
                self._on_status(data.get("message") or "")
        elif message_type == "error":
            if _ends_session(data):
                self._live = False
            if self._on_error:
                self._on_error(data.get("error") or "", data.get("details"))
        else:
            logger.debug("Received unknown message type: %s", message_type)


def _ends_session(data: dict) -> bool:
    # a superseded session is immediately replaced by the one just requested
    reason = data.get("reason")
    return bool(reason) and reason != "superseded"
