from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class LivescribeConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LIVESCRIBE_")

    host: str = "0.0.0.0"
    port: int = 3000
    server_url: str = "ws://localhost:3000"

    downloader: str = "yt-dlp"
    ffmpeg_location: str = ""
    downloader_extra_args: dict[str, list[str]] = {}

    window_seconds: float = 10.0
    chunk_duration_seconds: float = 1.0
    read_chunk_size: int = 4096
    source_queue_size: int = 64
    session_inbox_size: int = 64
    source_grace_seconds: float = 30.0
    stop_timeout_seconds: float = 5.0

    backend: Literal["assemblyai", "openai-whisper"] = "assemblyai"
    assemblyai_api_key: str = ""
    assemblyai_api_key_file: str = ""
    assemblyai_base_url: str = "https://api.assemblyai.com"
    openai_api_key: str = ""
    openai_api_key_file: str = ""
    openai_model: str = "whisper-1"

    upload_timeout_seconds: float = 60.0
    transcribe_timeout_seconds: float = 120.0
    poll_interval_seconds: float = 1.0
    max_consecutive_failures: int = 3

    reconnect_base_delay: float = 2.0
    max_reconnect_attempts: int = 5

    default_language: str = "en"

    log_file: str = "/tmp/livescribe.log"

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def backend_api_key(self) -> str:
        if self.backend == "assemblyai":
            return self.assemblyai_api_key or self.read_secret(self.assemblyai_api_key_file)
        return self.openai_api_key or self.read_secret(self.openai_api_key_file)
