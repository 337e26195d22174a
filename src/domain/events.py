from dataclasses import dataclass, field
from time import time


@dataclass(frozen=True)
class DomainEvent:
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class ChunkReceived(DomainEvent):
    data: bytes = b""


@dataclass(frozen=True)
class SourceEnded(DomainEvent):
    returncode: int | None = 0


@dataclass(frozen=True)
class SourceFailedEvent(DomainEvent):
    reason: str = ""
    returncode: int | None = None


@dataclass(frozen=True)
class TranscriptReady(DomainEvent):
    session_id: str = ""
    sequence: int = 0
    text: str = ""

    @property
    def timestamp_ms(self) -> int:
        return int(self.timestamp * 1000)


@dataclass(frozen=True)
class WindowTranscriptionFailed(DomainEvent):
    session_id: str = ""
    sequence: int = 0
    reason: str = ""
    hard: bool = True


@dataclass(frozen=True)
class BackendExhaustedEvent(DomainEvent):
    session_id: str = ""
    consecutive_failures: int = 0
    reason: str = ""
