"""Tests for Settings parsing."""

from santa_video.config import Settings


class TestRetryBackoff:
    """Tests for backoff delay parsing and lookup."""

    def test_default_delays(self):
        settings = Settings()
        assert settings.retry_backoff_ms == [30000, 120000, 600000]

    def test_comma_separated(self):
        settings = Settings(retry_backoff_ms_raw="1000, 2000")
        assert settings.retry_backoff_ms == [1000, 2000]

    def test_json_array(self):
        settings = Settings(retry_backoff_ms_raw="[5000, 10000, 20000]")
        assert settings.retry_backoff_ms == [5000, 10000, 20000]

    def test_backoff_for_attempt(self):
        settings = Settings()
        assert settings.backoff_for_attempt(0) == 30000
        assert settings.backoff_for_attempt(1) == 120000
        assert settings.backoff_for_attempt(2) == 600000

    def test_backoff_beyond_list_uses_last(self):
        settings = Settings(max_retries=10)
        assert settings.backoff_for_attempt(7) == 600000

    def test_empty_delays(self):
        settings = Settings(retry_backoff_ms_raw="")
        assert settings.backoff_for_attempt(0) == 0


class TestDefaults:
    """Tests for render defaults."""

    def test_render_defaults(self):
        settings = Settings()
        assert settings.render_fps == 60
        assert settings.intro_duration_seconds == 2
        assert settings.render_timeout_ms == 120_000
        assert settings.remote_render_timeout_ms == 240_000
        assert settings.shutdown_timeout_seconds == 300
        assert settings.recordings_bucket == "call-recordings"
        assert settings.videos_bucket == "call-videos"
