import logging
from collections.abc import Callable

from config import LivescribeConfig
from adapters.source_process import SourceProcessSupervisor
from adapters.websocket_client import WebSocketConnector
from adapters.websocket_server import LiveTranscriptionServer
from domain.connection import ConnectionManager
from domain.controller import SessionController
from domain.dispatcher import TranscriptionDispatcher
from domain.session import SessionRegistry
from ports.channel import ClientChannelPort
from ports.media_source import MediaSourcePort
from ports.transcription_backend import TranscriptionBackendPort

logger = logging.getLogger(__name__)


def create_backend(config: LivescribeConfig) -> TranscriptionBackendPort:
    api_key = config.backend_api_key()
    if config.backend == "openai-whisper":
        from adapters.openai_whisper_backend import OpenAIWhisperBackend

        return OpenAIWhisperBackend(api_key=api_key, model=config.openai_model)

    from adapters.assemblyai_backend import AssemblyAIBackend

    return AssemblyAIBackend(
        api_key=api_key,
        base_url=config.assemblyai_base_url,
        poll_interval=config.poll_interval_seconds,
        request_timeout=max(config.upload_timeout_seconds, config.transcribe_timeout_seconds),
    )


def create_source_factory(config: LivescribeConfig) -> Callable[[], MediaSourcePort]:
    def create_source() -> MediaSourcePort:
        return SourceProcessSupervisor(
            downloader=config.downloader,
            ffmpeg_location=config.ffmpeg_location,
            extra_args=config.downloader_extra_args,
            read_chunk_size=config.read_chunk_size,
            queue_size=config.source_queue_size,
            grace_seconds=config.source_grace_seconds,
            stop_timeout=config.stop_timeout_seconds,
        )

    return create_source


def create_dispatcher(
    config: LivescribeConfig, backend: TranscriptionBackendPort | None = None
) -> TranscriptionDispatcher:
    return TranscriptionDispatcher(
        backend=backend or create_backend(config),
        upload_timeout=config.upload_timeout_seconds,
        transcribe_timeout=config.transcribe_timeout_seconds,
        max_consecutive_failures=config.max_consecutive_failures,
    )


def create_server(config: LivescribeConfig) -> LiveTranscriptionServer:
    registry = SessionRegistry()
    dispatcher = create_dispatcher(config)
    source_factory = create_source_factory(config)

    def create_controller(channel: ClientChannelPort) -> SessionController:
        return SessionController(
            channel=channel,
            source_factory=source_factory,
            dispatcher=dispatcher,
            registry=registry,
            window_seconds=config.window_seconds,
            chunk_duration_seconds=config.chunk_duration_seconds,
            default_language=config.default_language,
            inbox_size=config.session_inbox_size,
        )

    logger.info(
        "Backend: %s, window: %.1fs, downloader: %s",
        config.backend,
        config.window_seconds,
        config.downloader,
    )
    return LiveTranscriptionServer(
        controller_factory=create_controller,
        registry=registry,
        dispatcher=dispatcher,
        host=config.host,
        port=config.port,
    )


def create_connection_manager(config: LivescribeConfig, **callbacks) -> ConnectionManager:
    return ConnectionManager(
        connector=WebSocketConnector(),
        url=config.server_url,
        base_delay=config.reconnect_base_delay,
        max_attempts=config.max_reconnect_attempts,
        **callbacks,
    )
