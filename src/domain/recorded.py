import logging
from dataclasses import dataclass

from domain.dispatcher import TranscriptionDispatcher
from domain.platform import Platform, detect_platform, validate_url
from domain.window import DEFAULT_CHUNK_DURATION_SECONDS, AudioWindow
from ports.media_source import MediaSourcePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedTranscript:
    text: str
    platform: Platform
    audio_bytes: int


async def transcribe_recorded(
    source: MediaSourcePort,
    dispatcher: TranscriptionDispatcher,
    url: str,
    language: str = "en",
    chunk_duration_seconds: float = DEFAULT_CHUNK_DURATION_SECONDS,
) -> RecordedTranscript:
    url = validate_url(url)
    platform = detect_platform(url)
    logger.info("Processing %s video: %s", platform.value, url)

    chunks: list[bytes] = []
    await source.start(url, live=False)
    try:
        async for chunk in source.chunks():
            chunks.append(chunk)
    finally:
        await source.stop()

    window = AudioWindow(data=b"".join(chunks), duration=len(chunks) * chunk_duration_seconds)
    logger.info("Downloaded %s audio, size: %d bytes", platform.value, len(window))

    text = await dispatcher.transcribe_window(window, language)
    return RecordedTranscript(text=text, platform=platform, audio_bytes=len(window))
