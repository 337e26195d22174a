import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from adapters.openai_whisper_backend import OpenAIWhisperBackend
from domain.dispatcher import TranscriptionDispatcher
from domain.errors import TranscriptionFailed
from domain.window import AudioWindow

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")


def make_backend(create: AsyncMock) -> OpenAIWhisperBackend:
    backend = OpenAIWhisperBackend(api_key="sk-test", model="whisper-1")
    client = MagicMock()
    client.audio.transcriptions.create = create
    client.close = AsyncMock()
    backend._client = client
    return backend


class TestOpenAIWhisperBackend:
    @pytest.mark.asyncio
    async def test_transcribes_staged_audio(self):
        create = AsyncMock(return_value=SimpleNamespace(text=" bom dia "))
        backend = make_backend(create)

        audio_ref = await backend.upload(b"mp3-bytes")
        text = await backend.transcribe(audio_ref, "pt")

        assert text == "bom dia"
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["language"] == "pt"
        assert kwargs["file"][1] == b"mp3-bytes"

    @pytest.mark.asyncio
    async def test_staged_audio_is_used_once(self):
        backend = make_backend(AsyncMock(return_value=SimpleNamespace(text="x")))
        audio_ref = await backend.upload(b"a")
        await backend.transcribe(audio_ref, "en")
        with pytest.raises(TranscriptionFailed):
            await backend.transcribe(audio_ref, "en")

    @pytest.mark.asyncio
    async def test_bad_request_is_soft(self):
        error = openai.BadRequestError(
            "Invalid file format", response=httpx.Response(400, request=REQUEST), body=None
        )
        backend = make_backend(AsyncMock(side_effect=error))
        audio_ref = await backend.upload(b"a")
        with pytest.raises(TranscriptionFailed) as excinfo:
            await backend.transcribe(audio_ref, "en")
        assert not excinfo.value.hard

    @pytest.mark.asyncio
    async def test_connection_error_is_hard(self):
        backend = make_backend(AsyncMock(side_effect=openai.APIConnectionError(request=REQUEST)))
        audio_ref = await backend.upload(b"a")
        with pytest.raises(TranscriptionFailed) as excinfo:
            await backend.transcribe(audio_ref, "en")
        assert excinfo.value.hard

    @pytest.mark.asyncio
    async def test_shutdown_mid_request_leaves_nothing_staged(self):
        started = asyncio.Event()

        async def hang(**kwargs):
            started.set()
            await asyncio.Event().wait()

        backend = make_backend(AsyncMock(side_effect=hang))
        dispatcher = TranscriptionDispatcher(backend)
        dispatcher.open("s1", asyncio.Queue())
        dispatcher.submit("s1", AudioWindow(data=b"mp3-bytes", duration=10.0), "en")

        await asyncio.wait_for(started.wait(), timeout=1.0)
        await dispatcher.shutdown()

        assert backend._staged == {}
        backend._client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timed_out_request_leaves_nothing_staged(self):
        async def hang(**kwargs):
            await asyncio.Event().wait()

        backend = make_backend(AsyncMock(side_effect=hang))
        dispatcher = TranscriptionDispatcher(backend, transcribe_timeout=0.05)

        with pytest.raises(TranscriptionFailed) as excinfo:
            await dispatcher.transcribe_window(AudioWindow(data=b"mp3-bytes", duration=10.0), "en")
        assert excinfo.value.reason == "timeout during transcription"
        assert backend._staged == {}

    @pytest.mark.asyncio
    async def test_close_clears_staged_audio(self):
        backend = make_backend(AsyncMock())
        await backend.upload(b"a")
        await backend.close()
        assert backend._staged == {}
        backend._client.close.assert_awaited_once()
