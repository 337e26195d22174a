from typing import Protocol


class TranscriptionBackendPort(Protocol):
    async def upload(self, audio: bytes) -> str: ...
    async def transcribe(self, audio_ref: str, language: str) -> str: ...
    async def close(self) -> None: ...
