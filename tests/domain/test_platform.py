import pytest

from domain.errors import InvalidRequest
from domain.platform import (
    BASE_DOWNLOADER_ARGS,
    LIVE_FROM_START_ARG,
    Platform,
    detect_platform,
    downloader_args,
    validate_url,
)


class TestDetectPlatform:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.youtube.com/watch?v=abc", Platform.YOUTUBE),
            ("https://youtu.be/abc", Platform.YOUTUBE),
            ("https://m.youtube.com/live/abc", Platform.YOUTUBE),
            ("https://www.instagram.com/p/abc/", Platform.INSTAGRAM),
            ("https://www.facebook.com/watch/live/?v=1", Platform.FACEBOOK),
            ("https://fb.com/video/1", Platform.FACEBOOK),
            ("https://www.tiktok.com/@user/live", Platform.TIKTOK),
            ("https://twitter.com/user/status/1", Platform.TWITTER),
            ("https://x.com/user/status/1", Platform.TWITTER),
            ("https://vimeo.com/123", Platform.VIMEO),
            ("https://example.com/stream", Platform.UNKNOWN),
        ],
    )
    def test_known_hosts(self, url, expected):
        assert detect_platform(url) is expected

    def test_lookalike_host_is_unknown(self):
        assert detect_platform("https://notyoutube.com/watch") is Platform.UNKNOWN

    def test_host_match_is_case_insensitive(self):
        assert detect_platform("https://WWW.YouTube.COM/watch?v=1") is Platform.YOUTUBE


class TestValidateUrl:
    @pytest.mark.parametrize("url", [None, "", "   ", 42])
    def test_missing_url(self, url):
        with pytest.raises(InvalidRequest, match="Video URL is required"):
            validate_url(url)

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/a", "https://"])
    def test_malformed_url(self, url):
        with pytest.raises(InvalidRequest, match="Invalid URL format"):
            validate_url(url)

    def test_strips_whitespace(self):
        assert validate_url("  https://youtu.be/x ") == "https://youtu.be/x"


class TestDownloaderArgs:
    def test_live_args(self):
        args = downloader_args(Platform.YOUTUBE, live=True)
        assert args[: len(BASE_DOWNLOADER_ARGS)] == BASE_DOWNLOADER_ARGS
        assert LIVE_FROM_START_ARG in args

    def test_recorded_args_skip_live_from_start(self):
        assert LIVE_FROM_START_ARG not in downloader_args(Platform.YOUTUBE, live=False)

    def test_ffmpeg_location(self):
        args = downloader_args(Platform.VIMEO, live=False, ffmpeg_location="/opt/ffmpeg")
        index = args.index("--ffmpeg-location")
        assert args[index + 1] == "/opt/ffmpeg"

    def test_extra_args_apply_only_to_matching_platform(self):
        extra = {"tiktok": ["--referer", "https://www.tiktok.com/"]}
        assert downloader_args(Platform.TIKTOK, live=True, extra_args=extra)[-2:] == (
            "--referer",
            "https://www.tiktok.com/",
        )
        assert "--referer" not in downloader_args(Platform.YOUTUBE, live=True, extra_args=extra)
