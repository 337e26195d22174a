from collections.abc import Mapping, Sequence
from enum import Enum
from urllib.parse import urlparse

from domain.errors import InvalidRequest


class Platform(str, Enum):
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    TWITTER = "twitter"
    VIMEO = "vimeo"
    UNKNOWN = "unknown"


PLATFORM_DOMAINS: tuple[tuple[Platform, tuple[str, ...]], ...] = (
    (Platform.YOUTUBE, ("youtube.com", "youtu.be")),
    (Platform.INSTAGRAM, ("instagram.com",)),
    (Platform.FACEBOOK, ("facebook.com", "fb.com")),
    (Platform.TIKTOK, ("tiktok.com",)),
    (Platform.TWITTER, ("twitter.com", "x.com")),
    (Platform.VIMEO, ("vimeo.com",)),
)

BASE_DOWNLOADER_ARGS: tuple[str, ...] = (
    "-x",
    "--audio-format",
    "mp3",
    "--output",
    "-",
    "--no-playlist",
)
LIVE_FROM_START_ARG = "--live-from-start"


def validate_url(url: object) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidRequest("Video URL is required")
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidRequest(f"Invalid URL format: {url}")
    return url


def detect_platform(url: str) -> Platform:
    hostname = (urlparse(validate_url(url)).hostname or "").lower()
    for platform, domains in PLATFORM_DOMAINS:
        for domain in domains:
            if hostname == domain or hostname.endswith("." + domain):
                return platform
    return Platform.UNKNOWN


def downloader_args(
    platform: Platform,
    live: bool,
    ffmpeg_location: str = "",
    extra_args: Mapping[str, Sequence[str]] | None = None,
) -> tuple[str, ...]:
    args = list(BASE_DOWNLOADER_ARGS)
    if live:
        args.append(LIVE_FROM_START_ARG)
    if ffmpeg_location:
        args.extend(["--ffmpeg-location", ffmpeg_location])
    if extra_args:
        args.extend(extra_args.get(platform.value, ()))
    return tuple(args)
