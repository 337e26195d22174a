import asyncio
import logging

import httpx

from domain.errors import TranscriptionFailed

logger = logging.getLogger(__name__)

ASSEMBLYAI_BASE_URL = "https://api.assemblyai.com"
HARD_STATUS_CODES = {401, 403, 408, 429}


class AssemblyAIBackend:
    def __init__(
        self,
        api_key: str,
        base_url: str = ASSEMBLYAI_BASE_URL,
        poll_interval: float = 1.0,
        request_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._poll_interval = poll_interval
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"authorization": api_key},
            timeout=httpx.Timeout(request_timeout),
            transport=transport,
        )

    async def upload(self, audio: bytes) -> str:
        data = await self._request(
            "POST",
            "/v2/upload",
            content=audio,
            headers={"Content-Type": "application/octet-stream"},
        )
        upload_url = data.get("upload_url")
        if not upload_url:
            raise TranscriptionFailed("AssemblyAI upload returned no upload_url", hard=True)
        logger.debug("Uploaded %d bytes to AssemblyAI", len(audio))
        return upload_url

    async def transcribe(self, audio_ref: str, language: str) -> str:
        created = await self._request(
            "POST",
            "/v2/transcript",
            json={"audio_url": audio_ref, "language_code": language},
        )
        transcript_id = created.get("id")
        if not transcript_id:
            raise TranscriptionFailed("AssemblyAI returned no transcript id", hard=True)

        while True:
            transcript = await self._request("GET", f"/v2/transcript/{transcript_id}")
            status = transcript.get("status")
            if status == "completed":
                return (transcript.get("text") or "").strip()
            if status == "error":
                raise TranscriptionFailed(
                    f"AssemblyAI transcription error: {transcript.get('error') or 'unknown'}",
                    hard=False,
                )
            await asyncio.sleep(self._poll_interval)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise TranscriptionFailed(
                f"AssemblyAI {path} returned {status}: {_error_detail(exc.response)}",
                hard=status >= 500 or status in HARD_STATUS_CODES,
            ) from exc
        except httpx.TransportError as exc:
            raise TranscriptionFailed(f"AssemblyAI unreachable: {exc!r}", hard=True) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise TranscriptionFailed(f"AssemblyAI {path} returned invalid JSON", hard=True) from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("error", response.text))
    except ValueError:
        return response.text
