from config import LivescribeConfig


class TestLivescribeConfig:
    def test_defaults(self):
        config = LivescribeConfig()
        assert config.port == 3000
        assert config.window_seconds == 10.0
        assert config.chunk_duration_seconds == 1.0
        assert config.backend == "assemblyai"
        assert config.max_consecutive_failures == 3
        assert config.reconnect_base_delay == 2.0
        assert config.max_reconnect_attempts == 5
        assert config.default_language == "en"
        assert config.downloader_extra_args == {}

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LIVESCRIBE_PORT", "4000")
        monkeypatch.setenv("LIVESCRIBE_BACKEND", "openai-whisper")
        monkeypatch.setenv("LIVESCRIBE_WINDOW_SECONDS", "5")
        monkeypatch.setenv("LIVESCRIBE_DOWNLOADER_EXTRA_ARGS", '{"tiktok": ["--referer", "https://www.tiktok.com/"]}')

        config = LivescribeConfig()
        assert config.port == 4000
        assert config.backend == "openai-whisper"
        assert config.window_seconds == 5.0
        assert config.downloader_extra_args == {"tiktok": ["--referer", "https://www.tiktok.com/"]}

    def test_read_secret(self, tmp_path):
        secret = tmp_path / "key"
        secret.write_text("abc123\n")
        config = LivescribeConfig()
        assert config.read_secret(str(secret)) == "abc123"
        assert config.read_secret(str(tmp_path / "missing")) == ""
        assert config.read_secret("") == ""

    def test_backend_api_key_prefers_inline_value(self, tmp_path):
        secret = tmp_path / "key"
        secret.write_text("from-file")
        config = LivescribeConfig(assemblyai_api_key="inline", assemblyai_api_key_file=str(secret))
        assert config.backend_api_key() == "inline"

    def test_backend_api_key_from_file(self, tmp_path):
        secret = tmp_path / "key"
        secret.write_text("sk-file")
        config = LivescribeConfig(backend="openai-whisper", openai_api_key_file=str(secret))
        assert config.backend_api_key() == "sk-file"
