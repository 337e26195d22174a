import asyncio
import logging
import re
from collections.abc import AsyncIterator, Mapping, Sequence
from enum import Enum, auto

from domain.errors import SourceFailed, SourceUnavailable
from domain.platform import Platform, detect_platform, downloader_args

logger = logging.getLogger(__name__)

STDOUT_READ_CHUNK_SIZE = 4096
DEFAULT_QUEUE_SIZE = 64
PROGRESS_MARKERS = ("[download]", "[info]")
LINE_SPLIT = re.compile(rb"[\r\n]")

_EOF = object()


class DiagnosticKind(Enum):
    PROGRESS = auto()
    WARNING = auto()


def classify_diagnostic(line: str, platform: Platform | str = Platform.UNKNOWN) -> DiagnosticKind:
    platform_name = platform.value if isinstance(platform, Platform) else platform
    markers = PROGRESS_MARKERS + (f"[{platform_name}]",)
    if any(marker in line for marker in markers):
        return DiagnosticKind.PROGRESS
    return DiagnosticKind.WARNING


class SourceProcessSupervisor:
    def __init__(
        self,
        downloader: str = "yt-dlp",
        ffmpeg_location: str = "",
        extra_args: Mapping[str, Sequence[str]] | None = None,
        read_chunk_size: int = STDOUT_READ_CHUNK_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        grace_seconds: float = 30.0,
        stop_timeout: float = 5.0,
    ) -> None:
        self._downloader = downloader
        self._ffmpeg_location = ffmpeg_location
        self._extra_args = extra_args or {}
        self._read_chunk_size = read_chunk_size
        self._grace_seconds = grace_seconds
        self._stop_timeout = stop_timeout

        self._process: asyncio.subprocess.Process | None = None
        self._platform = Platform.UNKNOWN
        self._chunk_queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._stdout_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._chunks_received = 0
        self._stopped = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def chunks_received(self) -> int:
        return self._chunks_received

    def build_command(self, url: str, live: bool) -> list[str]:
        self._platform = detect_platform(url)
        args = downloader_args(
            self._platform,
            live=live,
            ffmpeg_location=self._ffmpeg_location,
            extra_args=self._extra_args,
        )
        return [self._downloader, *args, url]

    async def start(self, url: str, live: bool = True) -> None:
        if self._process is not None:
            raise RuntimeError("Source process already started")

        command = self.build_command(url, live)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SourceUnavailable(f"Failed to start {self._downloader}: {exc}") from exc

        logger.info(
            "Source process started (pid=%s, platform=%s, live=%s)",
            self._process.pid,
            self._platform.value,
            live,
        )
        self._stdout_task = asyncio.create_task(self._pump_stdout())
        self._stderr_task = asyncio.create_task(self._pump_stderr())

    async def chunks(self) -> AsyncIterator[bytes]:
        if self._process is None:
            raise RuntimeError("Source process not started")

        while True:
            timeout = self._grace_seconds if self._chunks_received == 0 else None
            try:
                item = await asyncio.wait_for(self._chunk_queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                await self.stop()
                raise SourceFailed(
                    f"No audio data within {self._grace_seconds:.0f}s for {self._platform.value}"
                ) from None

            if item is _EOF:
                break
            self._chunks_received += 1
            yield item

        returncode = await self._process.wait()
        if self._stopped:
            return
        if returncode != 0:
            raise SourceFailed(
                f"Download failed for {self._platform.value} with code {returncode}",
                returncode=returncode,
            )
        if self._chunks_received == 0:
            raise SourceFailed(
                f"Download failed for {self._platform.value} with code {returncode}. "
                "No audio data received.",
                returncode=returncode,
            )
        logger.info("Source process exited cleanly after %d chunks", self._chunks_received)

    async def stop(self) -> None:
        self._stopped = True
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self._stop_timeout)
            except asyncio.TimeoutError:
                logger.warning("Source process %s ignored SIGTERM, killing", process.pid)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            logger.info("Source process %s stopped (code %s)", process.pid, process.returncode)

        for task in (self._stdout_task, self._stderr_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def _pump_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        try:
            while True:
                chunk = await self._process.stdout.read(self._read_chunk_size)
                if not chunk:
                    break
                await self._chunk_queue.put(chunk)
        except (OSError, ValueError):
            logger.exception("Failed reading source output")
        await self._chunk_queue.put(_EOF)

    async def _pump_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        pending = b""
        while True:
            data = await self._process.stderr.read(self._read_chunk_size)
            if not data:
                break
            # progress updates are terminated by carriage returns
            *lines, pending = LINE_SPLIT.split(pending + data)
            for raw in lines:
                self._log_diagnostic(raw)
        if pending:
            self._log_diagnostic(pending)

    def _log_diagnostic(self, raw: bytes) -> None:
        line = raw.decode(errors="replace").strip()
        if not line:
            return
        if classify_diagnostic(line, self._platform) is DiagnosticKind.PROGRESS:
            logger.debug("%s progress: %s", self._platform.value, line)
        else:
            logger.warning("%s source: %s", self._platform.value, line)
