import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from config import LivescribeConfig

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: LivescribeConfig) -> list[HealthCheckResult]:
    results = [
        _check_downloader(config),
        _check_ffmpeg(config),
        _check_api_keys(config),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    critical_checks = {"downloader", "api_keys"}
    return any(not r.passed and r.name in critical_checks for r in results)


def _check_downloader(config: LivescribeConfig) -> HealthCheckResult:
    name = "downloader"
    path = shutil.which(config.downloader)
    if path is None:
        return HealthCheckResult(name=name, passed=False, detail=f"'{config.downloader}' not found on PATH")
    return HealthCheckResult(name=name, passed=True, detail=path)


def _check_ffmpeg(config: LivescribeConfig) -> HealthCheckResult:
    name = "ffmpeg"
    if config.ffmpeg_location:
        location = Path(config.ffmpeg_location)
        if location.exists():
            return HealthCheckResult(name=name, passed=True, detail=f"Using {location}")
        return HealthCheckResult(name=name, passed=False, detail=f"{location} does not exist")

    path = shutil.which("ffmpeg")
    if path is None:
        return HealthCheckResult(name=name, passed=False, detail="ffmpeg not found on PATH, audio extraction may fail")
    return HealthCheckResult(name=name, passed=True, detail=path)


def _check_api_keys(config: LivescribeConfig) -> HealthCheckResult:
    name = "api_keys"
    if config.backend_api_key():
        return HealthCheckResult(name=name, passed=True, detail=f"{config.backend} key loaded")

    if config.backend == "assemblyai":
        source = config.assemblyai_api_key_file or "LIVESCRIBE_ASSEMBLYAI_API_KEY"
    else:
        source = config.openai_api_key_file or "LIVESCRIBE_OPENAI_API_KEY"
    return HealthCheckResult(name=name, passed=False, detail=f"Missing: {config.backend} ({source})")
