import asyncio
import logging
from dataclasses import dataclass

from domain.errors import BackendExhausted, DispatcherBusy, TranscriptionFailed
from domain.events import BackendExhaustedEvent, TranscriptReady, WindowTranscriptionFailed
from domain.window import AudioWindow
from ports.transcription_backend import TranscriptionBackendPort

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONSECUTIVE_FAILURES = 3


@dataclass
class _Slot:
    outbox: asyncio.Queue
    task: asyncio.Task | None = None
    sequence: int = 0
    consecutive_failures: int = 0
    exhausted: bool = False


class TranscriptionDispatcher:
    """Hands audio windows to the backend, one request in flight per session.

    Results are delivered to the outbox registered with ``open`` in the
    order windows were submitted. Closing a slot discards whatever the
    in-flight request eventually returns.

    Only an unbroken run of hard failures exhausts the backend: a success
    or a soft failure (the backend rejected that audio) resets the count.
    """

    def __init__(
        self,
        backend: TranscriptionBackendPort,
        upload_timeout: float = 60.0,
        transcribe_timeout: float = 120.0,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
    ) -> None:
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        self._backend = backend
        self._upload_timeout = upload_timeout
        self._transcribe_timeout = transcribe_timeout
        self._max_consecutive_failures = max_consecutive_failures
        self._slots: dict[str, _Slot] = {}
        self._orphans: set[asyncio.Task] = set()

    @property
    def max_consecutive_failures(self) -> int:
        return self._max_consecutive_failures

    def open(self, session_id: str, outbox: asyncio.Queue) -> None:
        if session_id in self._slots:
            raise ValueError(f"Session {session_id} already has a dispatch slot")
        self._slots[session_id] = _Slot(outbox=outbox)

    def is_open(self, session_id: str) -> bool:
        return session_id in self._slots

    def is_busy(self, session_id: str) -> bool:
        slot = self._slots.get(session_id)
        return slot is not None and slot.task is not None and not slot.task.done()

    def submit(self, session_id: str, window: AudioWindow, language: str) -> int:
        slot = self._slots.get(session_id)
        if slot is None:
            raise KeyError(f"No dispatch slot for session {session_id}")
        if slot.exhausted:
            raise BackendExhausted(f"Backend exhausted for session {session_id}")
        if self.is_busy(session_id):
            raise DispatcherBusy(f"Transcription already in flight for session {session_id}")

        slot.sequence += 1
        sequence = slot.sequence
        logger.debug(
            "Dispatching window %d for session %s (%d bytes, %.1fs)",
            sequence,
            session_id,
            len(window),
            window.duration,
        )
        slot.task = asyncio.create_task(self._run(session_id, slot, sequence, window, language))
        return sequence

    def close(self, session_id: str) -> None:
        slot = self._slots.pop(session_id, None)
        if slot is None or slot.task is None or slot.task.done():
            return
        logger.debug("Session %s closed with a transcription in flight, result will be discarded", session_id)
        self._orphans.add(slot.task)
        slot.task.add_done_callback(self._orphans.discard)

    async def shutdown(self) -> None:
        tasks = [slot.task for slot in self._slots.values() if slot.task] + list(self._orphans)
        self._slots.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._backend.close()

    async def transcribe_window(self, window: AudioWindow, language: str) -> str:
        # both steps run inline in this task so a staged upload always reaches transcribe
        try:
            async with asyncio.timeout(self._upload_timeout):
                audio_ref = await self._backend.upload(window.data)
        except TimeoutError:
            raise TranscriptionFailed("timeout during upload", hard=True) from None

        try:
            async with asyncio.timeout(self._transcribe_timeout):
                return await self._backend.transcribe(audio_ref, language)
        except TimeoutError:
            raise TranscriptionFailed("timeout during transcription", hard=True) from None

    async def _run(
        self,
        session_id: str,
        slot: _Slot,
        sequence: int,
        window: AudioWindow,
        language: str,
    ) -> None:
        events: list = []
        try:
            text = await self.transcribe_window(window, language)
        except TranscriptionFailed as exc:
            events = self._record_failure(session_id, slot, sequence, exc.reason, exc.hard)
        except Exception as exc:
            logger.exception("Unexpected backend error for session %s", session_id)
            events = self._record_failure(session_id, slot, sequence, str(exc) or type(exc).__name__, True)
        else:
            slot.consecutive_failures = 0
            events = [TranscriptReady(session_id=session_id, sequence=sequence, text=text)]

        for event in events:
            if self._slots.get(session_id) is not slot:
                logger.debug("Discarding window %d result for closed session %s", sequence, session_id)
                return
            await slot.outbox.put(event)

    def _record_failure(
        self,
        session_id: str,
        slot: _Slot,
        sequence: int,
        reason: str,
        hard: bool,
    ) -> list:
        if hard:
            slot.consecutive_failures += 1
        else:
            slot.consecutive_failures = 0
        logger.warning(
            "Transcription failed for session %s window %d (%s, hard=%s, consecutive=%d)",
            session_id,
            sequence,
            reason,
            hard,
            slot.consecutive_failures,
        )
        events: list = [
            WindowTranscriptionFailed(session_id=session_id, sequence=sequence, reason=reason, hard=hard)
        ]
        if slot.consecutive_failures >= self._max_consecutive_failures:
            slot.exhausted = True
            events.append(
                BackendExhaustedEvent(
                    session_id=session_id,
                    consecutive_failures=slot.consecutive_failures,
                    reason=reason,
                )
            )
        return events
