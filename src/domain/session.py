import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from time import time

from domain.platform import Platform
from domain.state import SessionState, TerminationReason
from domain.window import WindowAccumulator
from ports.media_source import MediaSourcePort

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    url: str
    language: str
    platform: Platform
    source: MediaSourcePort
    accumulator: WindowAccumulator
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time)
    state: SessionState = SessionState.IDLE
    termination_reason: TerminationReason | None = None
    windows_dispatched: int = 0
    inbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    tasks: list[asyncio.Task] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def active(self) -> bool:
        return self.state in (SessionState.STARTING, SessionState.LIVE)


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    async def add(self, session: Session) -> None:
        async with self._lock:
            if session.id in self._sessions:
                raise ValueError(f"Session {session.id} already registered")
            self._sessions[session.id] = session
        logger.debug("Registered session %s (%d active)", session.id, len(self._sessions))

    async def remove(self, session_id: str) -> Session | None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.debug("Removed session %s (%d active)", session_id, len(self._sessions))
        return session

    async def stop_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            async with session.lock:
                await session.source.stop()
        if sessions:
            logger.info("Stopped %d live session(s)", len(sessions))
