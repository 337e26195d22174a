import collections
from dataclasses import dataclass

DEFAULT_WINDOW_SECONDS = 10.0

# Chunks carry no timing from the downloader pipe, so each one counts as a
# fixed estimate. Window boundaries follow pipe write sizes, not audio time.
DEFAULT_CHUNK_DURATION_SECONDS = 1.0


@dataclass(frozen=True)
class AudioWindow:
    data: bytes
    duration: float

    def __len__(self) -> int:
        return len(self.data)


class WindowAccumulator:
    """Sliding audio buffer bounded by ``window_seconds`` of estimated duration.

    ``add_chunk`` evicts the oldest chunks as soon as the running total exceeds
    the window length, so memory stays bounded whatever the ingestion rate.
    ``drain`` is the only way data leaves the buffer.
    """

    def __init__(self, window_seconds: float = DEFAULT_WINDOW_SECONDS) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._window_seconds = window_seconds
        self._chunks: collections.deque[tuple[bytes, float]] = collections.deque()
        self._duration = 0.0
        self._size = 0

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def buffered_bytes(self) -> int:
        return self._size

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def add_chunk(self, data: bytes, duration: float = DEFAULT_CHUNK_DURATION_SECONDS) -> None:
        if duration < 0:
            raise ValueError("duration must not be negative")
        self._chunks.append((bytes(data), duration))
        self._duration += duration
        self._size += len(data)

        while self._duration > self._window_seconds and self._chunks:
            evicted, evicted_duration = self._chunks.popleft()
            self._duration -= evicted_duration
            self._size -= len(evicted)

        if not self._chunks:
            self._duration = 0.0

    def is_ready(self) -> bool:
        return self._duration >= self._window_seconds

    def drain(self) -> AudioWindow:
        window = AudioWindow(
            data=b"".join(chunk for chunk, _ in self._chunks),
            duration=self._duration,
        )
        self._chunks = collections.deque()
        self._duration = 0.0
        self._size = 0
        return window
