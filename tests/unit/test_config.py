"""Unit tests for settings loading."""

from convmem.core.config import Settings, get_settings
from convmem.core.enums import MemoryCategory, MemoryScope


class TestSettingsDefaults:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.backend.timeout_ms == 10_000
        assert settings.backend.retry_attempts == 3
        assert settings.memory.default_scope == MemoryScope.USER
        assert settings.memory.context_cache_ttl_seconds == 300
        assert settings.privacy.enable_pii_detection is True
        assert settings.privacy.auto_sanitization is False
        assert settings.privacy.data_retention_days == 30
        assert set(settings.privacy.allowed_categories) == set(MemoryCategory)


class TestSettingsFromEnv:
    def test_nested_env_vars(self, monkeypatch):
        monkeypatch.setenv("BACKEND__API_KEY", "k-123")
        monkeypatch.setenv("BACKEND__RETRY_ATTEMPTS", "5")
        monkeypatch.setenv("MEMORY__DEFAULT_SCOPE", "session")
        monkeypatch.setenv("PRIVACY__AUTO_SANITIZATION", "true")
        monkeypatch.setenv("PRIVACY__ALLOWED_CATEGORIES", '["context", "fact"]')
        settings = Settings(_env_file=None)
        assert settings.backend.api_key == "k-123"
        assert settings.backend.retry_attempts == 5
        assert settings.memory.default_scope == MemoryScope.SESSION
        assert settings.privacy.auto_sanitization is True
        assert settings.privacy.allowed_categories == [MemoryCategory.CONTEXT, MemoryCategory.FACT]

    def test_get_settings_is_cached(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        first = get_settings()
        assert first is get_settings()
        assert first.log_level == "DEBUG"
