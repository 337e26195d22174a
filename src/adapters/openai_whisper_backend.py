import logging
import uuid

import openai
from openai import AsyncOpenAI

from domain.errors import TranscriptionFailed

logger = logging.getLogger(__name__)


class OpenAIWhisperBackend:
    def __init__(self, api_key: str, model: str = "whisper-1", file_name: str = "live-stream.mp3") -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model
        self._file_name = file_name
        self._staged: dict[str, bytes] = {}

    async def upload(self, audio: bytes) -> str:
        # the transcription endpoint takes the audio inline, so uploads are staged locally
        audio_ref = uuid.uuid4().hex
        self._staged[audio_ref] = audio
        return audio_ref

    async def transcribe(self, audio_ref: str, language: str) -> str:
        audio = self._staged.pop(audio_ref, None)
        if audio is None:
            raise TranscriptionFailed(f"Unknown audio reference {audio_ref}", hard=False)

        try:
            result = await self._client.audio.transcriptions.create(
                model=self._model,
                file=(self._file_name, audio),
                language=language,
            )
        except openai.BadRequestError as exc:
            raise TranscriptionFailed(f"Whisper rejected audio: {exc}", hard=False) from exc
        except openai.APIError as exc:
            raise TranscriptionFailed(f"Whisper request failed: {exc}", hard=True) from exc
        return result.text.strip()

    async def close(self) -> None:
        self._staged.clear()
        await self._client.close()
