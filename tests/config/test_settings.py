"""Tests for Settings defaults and environment overrides."""

from research_system.config.settings import DEFAULT_RETRYABLE_STATUS_CODES, Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.cache_default_ttl == 3600.0
        assert settings.cache_stale_after == 2880.0
        assert settings.cache_max_entries == 1000
        assert settings.retryable_status_codes == set(DEFAULT_RETRYABLE_STATUS_CODES)
        assert settings.rate_limit_acquire_timeout is None
        assert settings.max_sources == 10

    def test_stale_window_clipped_to_ttl(self):
        settings = Settings(_env_file=None, cache_default_ttl=100, cache_stale_after=500)

        assert settings.cache_stale_after == 100

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("EXA_API_KEY", "from-env")
        monkeypatch.setenv("RATE_LIMIT_CAPACITY", "3")
        monkeypatch.setenv("RETRYABLE_STATUS_CODES", "[503]")
        monkeypatch.setenv("CACHE_ENABLED", "false")

        settings = Settings(_env_file=None)

        assert settings.exa_api_key == "from-env"
        assert settings.rate_limit_capacity == 3
        assert settings.retryable_status_codes == {503}
        assert settings.cache_enabled is False

    def test_missing_api_key_does_not_fail(self, monkeypatch):
        monkeypatch.delenv("EXA_API_KEY", raising=False)

        assert Settings(_env_file=None).exa_api_key == ""
