import asyncio
import json
import logging
from collections.abc import Callable

from domain.dispatcher import TranscriptionDispatcher
from domain.errors import DispatcherBusy, InvalidRequest, SourceFailed, SourceUnavailable
from domain.events import (
    BackendExhaustedEvent,
    ChunkReceived,
    SourceEnded,
    SourceFailedEvent,
    TranscriptReady,
    WindowTranscriptionFailed,
)
from domain.platform import detect_platform, validate_url
from domain.session import Session, SessionRegistry
from domain.state import SessionState, TerminationReason, validate_transition
from domain.window import DEFAULT_CHUNK_DURATION_SECONDS, DEFAULT_WINDOW_SECONDS, WindowAccumulator
from ports.channel import ClientChannelPort
from ports.media_source import MediaSourcePort

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
DEFAULT_INBOX_SIZE = 64


class SessionController:
    """Per-channel state machine driving one live transcription session at a time."""

    def __init__(
        self,
        channel: ClientChannelPort,
        source_factory: Callable[[], MediaSourcePort],
        dispatcher: TranscriptionDispatcher,
        registry: SessionRegistry,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        chunk_duration_seconds: float = DEFAULT_CHUNK_DURATION_SECONDS,
        default_language: str = DEFAULT_LANGUAGE,
        inbox_size: int = DEFAULT_INBOX_SIZE,
    ) -> None:
        self._channel = channel
        self._source_factory = source_factory
        self._dispatcher = dispatcher
        self._registry = registry
        self._window_seconds = window_seconds
        self._chunk_duration_seconds = chunk_duration_seconds
        self._default_language = default_language
        self._inbox_size = inbox_size
        self._session: Session | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    async def handle_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            await self._send_error("Failed to process message", f"Invalid JSON: {exc}")
            return
        if not isinstance(message, dict):
            await self._send_error("Failed to process message", "Expected a JSON object")
            return

        message_type = message.get("type")
        if message_type == "start_live":
            await self.start(message.get("url"), message.get("language") or self._default_language)
        elif message_type == "stop_live":
            await self.stop()
        else:
            await self._send_error("Failed to process message", f"Unknown message type: {message_type}")

    async def start(self, url: object, language: str | None = None) -> Session | None:
        try:
            url = validate_url(url)
        except InvalidRequest as exc:
            logger.warning("Rejected start_live: %s", exc)
            await self._send_error("Invalid request", str(exc))
            return None

        previous = self._session
        if previous is not None and previous.active:
            logger.info("Superseding session %s", previous.id)
            await self._teardown(previous, TerminationReason.SUPERSEDED)

        platform = detect_platform(url)
        session = Session(
            url=url,
            language=language or self._default_language,
            platform=platform,
            source=self._source_factory(),
            accumulator=WindowAccumulator(self._window_seconds),
            inbox=asyncio.Queue(maxsize=self._inbox_size),
        )
        self._session = session
        logger.info("Starting live stream processing for %s: %s", platform.value, url)
        self._transition_to(session, SessionState.STARTING)
        await self._registry.add(session)

        try:
            await session.source.start(url, live=True)
        except SourceUnavailable as exc:
            await self._registry.remove(session.id)
            self._transition_to(session, SessionState.TERMINATED)
            session.termination_reason = TerminationReason.SOURCE_UNAVAILABLE
            logger.error("Session %s source unavailable: %s", session.id, exc)
            await self._send_terminal_event(
                session, TerminationReason.SOURCE_UNAVAILABLE, "Source unavailable", str(exc)
            )
            return session

        self._transition_to(session, SessionState.LIVE)
        self._dispatcher.open(session.id, session.inbox)
        await self._send(
            {
                "type": "status",
                "message": f"Live stream processing started for {platform.value}",
                "platform": platform.value,
                "session_id": session.id,
            }
        )
        session.tasks = [
            asyncio.create_task(self._pump_source(session)),
            asyncio.create_task(self._run_session(session)),
        ]
        return session

    async def stop(self) -> None:
        session = self._session
        if session is None or not session.active:
            await self._send({"type": "status", "message": "No active live session"})
            return
        await self._teardown(session, TerminationReason.USER_STOP)

    async def close(self) -> None:
        session = self._session
        if session is not None and session.active:
            await self._teardown(session, TerminationReason.CHANNEL_CLOSED)

    async def wait_closed(self) -> None:
        session = self._session
        if session is None:
            return
        await asyncio.gather(*session.tasks, return_exceptions=True)

    def _transition_to(self, session: Session, target: SessionState) -> None:
        validate_transition(session.state, target)
        logger.info("State: %s -> %s (session %s)", session.state.name, target.name, session.id)
        session.state = target

    async def _pump_source(self, session: Session) -> None:
        try:
            async for chunk in session.source.chunks():
                await session.inbox.put(ChunkReceived(data=chunk))
        except SourceFailed as exc:
            await session.inbox.put(SourceFailedEvent(reason=exc.reason, returncode=exc.returncode))
        except Exception as exc:
            logger.exception("Source stream error for session %s", session.id)
            await session.inbox.put(SourceFailedEvent(reason=str(exc) or type(exc).__name__))
        else:
            await session.inbox.put(SourceEnded())

    async def _run_session(self, session: Session) -> None:
        source_done = False
        while True:
            event = await session.inbox.get()
            if session.state is not SessionState.LIVE:
                logger.debug("Session %s is %s, dropping %s", session.id, session.state.name, type(event).__name__)
                continue

            if isinstance(event, ChunkReceived):
                session.accumulator.add_chunk(event.data, self._chunk_duration_seconds)
            elif isinstance(event, TranscriptReady):
                logger.info("Transcript [%s #%d]: %s", session.id[:8], event.sequence, event.text)
                await self._send(
                    {
                        "type": "transcription",
                        "text": event.text,
                        "platform": session.platform.value,
                        "timestamp": event.timestamp_ms,
                        "session_id": session.id,
                        "sequence": event.sequence,
                    }
                )
            elif isinstance(event, WindowTranscriptionFailed):
                await self._send(
                    {
                        "type": "error",
                        "error": "Stream processing failed",
                        "details": event.reason,
                        "platform": session.platform.value,
                        "session_id": session.id,
                    }
                )
            elif isinstance(event, BackendExhaustedEvent):
                await self._teardown(
                    session,
                    TerminationReason.BACKEND_EXHAUSTED,
                    error="Transcription backend exhausted",
                    details=f"{event.consecutive_failures} consecutive failures, last: {event.reason}",
                )
                return
            elif isinstance(event, SourceFailedEvent):
                await self._teardown(
                    session,
                    TerminationReason.SOURCE_FAILED,
                    error="Stream source failed",
                    details=event.reason,
                )
                return
            elif isinstance(event, SourceEnded):
                logger.info("Source ended for session %s, flushing remaining audio", session.id)
                source_done = True

            if source_done:
                # pending results may still end the session with a different reason
                if self._dispatcher.is_busy(session.id) or not session.inbox.empty():
                    continue
                if session.accumulator.chunk_count:
                    self._dispatch_window(session)
                    continue
                await self._teardown(session, TerminationReason.SOURCE_ENDED)
                return

            if session.accumulator.is_ready():
                self._dispatch_window(session)

    def _dispatch_window(self, session: Session) -> None:
        if session.state is not SessionState.LIVE or self._dispatcher.is_busy(session.id):
            return
        window = session.accumulator.drain()
        try:
            self._dispatcher.submit(session.id, window, session.language)
        except DispatcherBusy as exc:
            logger.warning("Window dropped for session %s: %s", session.id, exc)
            return
        session.windows_dispatched += 1

    async def _teardown(
        self,
        session: Session,
        reason: TerminationReason,
        error: str = "",
        details: str = "",
    ) -> None:
        async with session.lock:
            if session.state in (SessionState.STOPPING, SessionState.TERMINATED):
                return
            self._transition_to(session, SessionState.STOPPING)
            session.termination_reason = reason
            self._dispatcher.close(session.id)
            await session.source.stop()

            current = asyncio.current_task()
            pending = [task for task in session.tasks if task is not current and not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            # unblocks an orphaned transcription still waiting to deliver
            while not session.inbox.empty():
                session.inbox.get_nowait()

            await self._registry.remove(session.id)
            self._transition_to(session, SessionState.TERMINATED)

        logger.info(
            "Session %s terminated (%s, %d windows dispatched)",
            session.id,
            reason.value,
            session.windows_dispatched,
        )
        if reason is TerminationReason.CHANNEL_CLOSED:
            return
        if reason.is_failure:
            await self._send_terminal_event(session, reason, error, details)
        else:
            await self._send(
                {
                    "type": "status",
                    "message": f"Live stream processing stopped ({reason.value})",
                    "platform": session.platform.value,
                    "reason": reason.value,
                    "session_id": session.id,
                }
            )

    async def _send_terminal_event(
        self,
        session: Session,
        reason: TerminationReason,
        error: str,
        details: str,
    ) -> None:
        await self._send(
            {
                "type": "error",
                "error": error,
                "details": details,
                "platform": session.platform.value,
                "reason": reason.value,
                "session_id": session.id,
            }
        )

    async def _send_error(self, error: str, details: str) -> None:
        await self._send({"type": "error", "error": error, "details": details})

    async def _send(self, message: dict) -> None:
        if not self._channel.open:
            logger.debug("Channel closed, dropping %s message", message.get("type"))
            return
        await self._channel.send(message)
