"""
Tests for configuration validation and defaults.

Tests cover:
- ServiceConfig.from_settings() - all sections
- Defaults class values
- ConfigValidationError on invalid values
- String log level coercion ("DEBUG" -> 4)
- Missing sections use defaults
- Environment overrides in load_settings()
- Settings properties
"""

import pytest

from speechmagic.core.config import (
    ConfigValidationError,
    Defaults,
    ServiceConfig,
    Settings,
    load_settings,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_provider_defaults(self):
        """Provider defaults target the HD speech model and nova voice."""
        assert Defaults.PROVIDER_MODEL == "tts-1-hd"
        assert Defaults.PROVIDER_DEFAULT_VOICE == "nova"
        assert Defaults.PROVIDER_RESPONSE_FORMAT == "mp3"

    def test_text_defaults(self):
        """Text bounds match the provider limits."""
        assert Defaults.TEXT_MAX_CHARS == 4096
        assert Defaults.SPEED_MIN == 0.25
        assert Defaults.SPEED_MAX == 4.0
        assert Defaults.SPEED_DEFAULT == 1.0

    def test_rate_limit_defaults(self):
        """Generate limit is 50 per hour, api 100 and auth 5 per 15 minutes."""
        assert Defaults.RATE_GENERATE_WINDOW_S == 3600
        assert Defaults.RATE_GENERATE_MAX == 50
        assert Defaults.RATE_API_WINDOW_S == 900
        assert Defaults.RATE_API_MAX == 100
        assert Defaults.RATE_AUTH_WINDOW_S == 900
        assert Defaults.RATE_AUTH_MAX == 5

    def test_api_defaults(self):
        """API is mounted under /api/tts with one hour download caching."""
        assert Defaults.API_PREFIX == "/api/tts"
        assert Defaults.API_DEBUG is False
        assert Defaults.API_DOWNLOAD_CACHE_SECONDS == 3600

    def test_ledger_defaults(self):
        """Ledger pages default to 10 and cap at 100."""
        assert Defaults.LEDGER_DEFAULT_PAGE_SIZE == 10
        assert Defaults.LEDGER_MAX_PAGE_SIZE == 100
        assert Defaults.LEDGER_PREVIEW_CHARS == 100


class TestServiceConfigFromSettings:
    """Tests for ServiceConfig.from_settings()."""

    def test_empty_settings_use_defaults(self):
        """Missing sections fall back to Defaults."""
        config = ServiceConfig.from_settings(Settings(raw={}))
        assert config.provider.model == Defaults.PROVIDER_MODEL
        assert config.provider.api_key == ""
        assert config.text.max_chars == Defaults.TEXT_MAX_CHARS
        assert config.storage.extension == ".mp3"
        assert config.rate_limits.enabled is True
        assert config.rate_limits.generate.max_requests == 50
        assert config.api.prefix == "/api/tts"
        assert config.auth.tokens == {}
        assert config.logging.level == 2

    def test_sections_are_read(self):
        """Values in each section override defaults."""
        config = ServiceConfig.from_settings(Settings(raw={
            "provider": {"model": "tts-1", "default_voice": "onyx", "timeout_s": 5},
            "storage": {"base_dir": "/tmp/x", "ttl_seconds": 60},
            "rate_limits": {"enabled": False, "generate": {"window_seconds": 10, "max_requests": 2}},
            "auth": {"tokens": {"abc": "user-1"}},
        }))
        assert config.provider.model == "tts-1"
        assert config.provider.default_voice == "onyx"
        assert config.provider.timeout_s == 5.0
        assert config.storage.base_dir == "/tmp/x"
        assert config.storage.ttl_seconds == 60
        assert config.rate_limits.enabled is False
        assert config.rate_limits.generate.window_seconds == 10
        assert config.rate_limits.generate.max_requests == 2
        assert config.rate_limits.api.max_requests == Defaults.RATE_API_MAX
        assert config.auth.tokens == {"abc": "user-1"}

    def test_trailing_slash_stripped_from_prefix(self):
        """A trailing slash on api.prefix is removed."""
        config = ServiceConfig.from_settings(Settings(raw={"api": {"prefix": "/speech/"}}))
        assert config.api.prefix == "/speech"

    def test_string_log_level(self):
        """Level names are mapped to numbers."""
        config = ServiceConfig.from_settings(Settings(raw={"logging": {"level": "DEBUG"}}))
        assert config.logging.level == 4
        config = ServiceConfig.from_settings(Settings(raw={"logging": {"level": "verbose"}}))
        assert config.logging.level == 3

    def test_log_level_out_of_range(self):
        """Numeric log levels outside 1-4 are rejected."""
        with pytest.raises(ConfigValidationError, match="logging.level"):
            ServiceConfig.from_settings(Settings(raw={"logging": {"level": 7}}))

    def test_negative_timeout_rejected(self):
        """provider.timeout_s must be positive."""
        with pytest.raises(ConfigValidationError, match="provider.timeout_s"):
            ServiceConfig.from_settings(Settings(raw={"provider": {"timeout_s": -1}}))

    def test_zero_rate_limit_rejected(self):
        """Rate limit windows and maxima must be positive."""
        with pytest.raises(ConfigValidationError, match="rate_limits.auth.max_requests"):
            ServiceConfig.from_settings(Settings(raw={"rate_limits": {"auth": {"max_requests": 0}}}))

    def test_extension_needs_dot(self):
        """storage.extension must start with a dot."""
        with pytest.raises(ConfigValidationError, match="storage.extension"):
            ServiceConfig.from_settings(Settings(raw={"storage": {"extension": "mp3"}}))

    def test_speed_bounds_order(self):
        """speed_min may not exceed speed_max."""
        with pytest.raises(ConfigValidationError):
            ServiceConfig.from_settings(Settings(raw={"text": {"speed_min": 3.0, "speed_max": 2.0}}))

    def test_page_size_above_max_rejected(self):
        """default_page_size must lie within [1, max_page_size]."""
        with pytest.raises(ConfigValidationError, match="ledger.default_page_size"):
            ServiceConfig.from_settings(Settings(raw={"ledger": {"default_page_size": 500}}))

    def test_tokens_must_be_mapping(self):
        """auth.tokens must be a mapping."""
        with pytest.raises(ConfigValidationError, match="auth.tokens"):
            ServiceConfig.from_settings(Settings(raw={"auth": {"tokens": ["abc"]}}))


class TestLoadSettings:
    """Tests for load_settings() and environment overrides."""

    def test_missing_required_file(self, tmp_path):
        """A missing required file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_missing_optional_file(self, tmp_path):
        """A missing optional file yields defaults."""
        settings = load_settings(str(tmp_path / "nope.yaml"), required=False)
        assert settings.raw == {}
        assert settings.api_prefix == "/api/tts"

    def test_yaml_is_read(self, tmp_path):
        """Values come from the YAML file."""
        path = tmp_path / "settings.yaml"
        path.write_text("provider:\n  default_voice: shimmer\nstorage:\n  base_dir: /data/audio\n")
        settings = load_settings(str(path))
        assert settings.default_voice == "shimmer"
        assert settings.storage_dir == "/data/audio"

    def test_env_overrides(self, tmp_path, monkeypatch):
        """Environment variables win over the file."""
        path = tmp_path / "settings.yaml"
        path.write_text("provider:\n  api_key: from-file\n")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("SPEECHMAGIC_STORAGE_DIR", "/srv/audio")
        monkeypatch.setenv("SPEECHMAGIC_DATABASE_URL", "sqlite://")
        monkeypatch.setenv("RATE_LIMIT_WINDOW_HOURS", "2")
        monkeypatch.setenv("RATE_LIMIT_REQUESTS", "7")
        monkeypatch.setenv("SPEECHMAGIC_DEBUG", "1")

        settings = load_settings(str(path))
        config = settings.get_service_config()

        assert settings.api_key == "sk-env"
        assert settings.storage_dir == "/srv/audio"
        assert settings.database_url == "sqlite://"
        assert config.rate_limits.generate.window_seconds == 7200
        assert config.rate_limits.generate.max_requests == 7
        assert config.api.debug is True

    def test_settings_are_frozen(self):
        """Settings cannot be reassigned."""
        settings = Settings(raw={})
        with pytest.raises(Exception):
            settings.raw = {"x": 1}

    def test_repository_settings_file_is_valid(self):
        """The shipped config/settings.yaml passes validation."""
        from pathlib import Path

        path = Path(__file__).parent.parent / "config" / "settings.yaml"
        config = load_settings(str(path)).get_service_config()
        assert config.api.prefix == "/api/tts"
        assert config.rate_limits.generate.max_requests == 50
