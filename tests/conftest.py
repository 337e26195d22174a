import asyncio
import json
from collections.abc import AsyncIterator, Callable

from domain.errors import ChannelLost, SourceFailed, SourceUnavailable

_END = object()
_CLOSE = object()


def make_chunks(count: int, size: int = 4) -> list[bytes]:
    return [bytes([i % 256]) * size for i in range(count)]


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


class FakeMediaSource:
    def __init__(
        self,
        chunks: list[bytes] | None = None,
        finished: bool = False,
        unavailable: bool = False,
        stop_delay: float = 0.0,
    ) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._unavailable = unavailable
        self._stop_delay = stop_delay
        self._chunks_received = 0
        self.started_with: tuple[str, bool] | None = None
        self.stop_calls = 0
        for chunk in chunks or []:
            self.feed(chunk)
        if finished:
            self.end()

    @property
    def chunks_received(self) -> int:
        return self._chunks_received

    @property
    def stopped(self) -> bool:
        return self.stop_calls > 0

    async def start(self, url: str, live: bool = True) -> None:
        if self._unavailable:
            raise SourceUnavailable("Failed to start yt-dlp: [Errno 2] No such file or directory")
        self.started_with = (url, live)

    def feed(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)

    def feed_many(self, chunks: list[bytes]) -> None:
        for chunk in chunks:
            self.feed(chunk)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def fail(self, reason: str, returncode: int | None = 1) -> None:
        self._queue.put_nowait(SourceFailed(reason, returncode=returncode))

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            self._chunks_received += 1
            yield item

    async def stop(self) -> None:
        self.stop_calls += 1
        if self._stop_delay:
            await asyncio.sleep(self._stop_delay)


class FakeBackend:
    """Returns queued results in order, or a generated text when none are queued.

    Set ``gate`` to hold every transcription until the event is set.
    """

    def __init__(self, results: list[str | Exception] | None = None) -> None:
        self._results = list(results or [])
        self.uploads: list[bytes] = []
        self.transcribe_calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def upload(self, audio: bytes) -> str:
        self.uploads.append(audio)
        return f"ref-{len(self.uploads)}"

    async def transcribe(self, audio_ref: str, language: str) -> str:
        self.transcribe_calls.append((audio_ref, language))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            result = self._results.pop(0) if self._results else f"text for {audio_ref}"
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


class FakeChannel:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self._open = True
        self.gate: asyncio.Event | None = None

    @property
    def open(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False

    async def send(self, message: dict) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.sent.append(message)

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == message_type]

    def with_reason(self) -> list[dict]:
        return [m for m in self.sent if "reason" in m]


class FakeConnection:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.closed:
            raise ChannelLost("Connection closed")
        self.sent.append(json.loads(text))

    def push(self, message: dict) -> None:
        self._incoming.put_nowait(json.dumps(message))

    def push_raw(self, text: str) -> None:
        self._incoming.put_nowait(text)

    def drop(self) -> None:
        self._incoming.put_nowait(_CLOSE)

    async def messages(self) -> AsyncIterator[str]:
        while True:
            item = await self._incoming.get()
            if item is _CLOSE:
                return
            yield item

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSE)


class FakeConnector:
    def __init__(self, outcomes: list[FakeConnection | Exception] | None = None) -> None:
        self._outcomes = list(outcomes or [])
        self.connections: list[FakeConnection] = []
        self.attempts = 0

    async def connect(self, url: str) -> FakeConnection:
        self.attempts += 1
        outcome = self._outcomes.pop(0) if self._outcomes else FakeConnection()
        if isinstance(outcome, Exception):
            raise outcome
        self.connections.append(outcome)
        return outcome


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)

