"""
Configuration Management for speechmagic.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (OPENAI_API_KEY, RATE_LIMIT_REQUESTS, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    provider:
      model: tts-1-hd
      default_voice: nova

    rate_limits:
      generate:
        window_seconds: 3600
        max_requests: 50

    ledger:
      url: sqlite:///./data/speechmagic.db
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or malformed."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Provider: OpenAI speech API
        - Text: Input bounds
        - Storage: Ephemeral MP3 directory
        - Ledger: Generation history database
        - Rate limits: generate / api / auth windows
        - API: Route prefix and download caching
        - Logging: Log level
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Provider (OpenAI speech API)
    # ─────────────────────────────────────────────────────────────────────────
    PROVIDER_MODEL = "tts-1-hd"
    PROVIDER_DEFAULT_VOICE = "nova"
    PROVIDER_RESPONSE_FORMAT = "mp3"
    PROVIDER_TIMEOUT_S = 60.0
    PROVIDER_MAX_RETRIES = 2        # retries inside the openai client only

    # ─────────────────────────────────────────────────────────────────────────
    # Text bounds
    # ─────────────────────────────────────────────────────────────────────────
    TEXT_MAX_CHARS = 4096
    SPEED_MIN = 0.25
    SPEED_MAX = 4.0
    SPEED_DEFAULT = 1.0

    # ─────────────────────────────────────────────────────────────────────────
    # Storage
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./temp"
    STORAGE_EXTENSION = ".mp3"
    STORAGE_CHUNK_SIZE = 64 * 1024
    STORAGE_TTL_SECONDS = 86400     # used by the cleanup command

    # ─────────────────────────────────────────────────────────────────────────
    # Ledger
    # ─────────────────────────────────────────────────────────────────────────
    LEDGER_URL = "sqlite:///./data/speechmagic.db"
    LEDGER_PREVIEW_CHARS = 100
    LEDGER_DEFAULT_PAGE_SIZE = 10
    LEDGER_MAX_PAGE_SIZE = 100

    # ─────────────────────────────────────────────────────────────────────────
    # Rate limits (fixed windows)
    # ─────────────────────────────────────────────────────────────────────────
    RATE_GENERATE_WINDOW_S = 3600
    RATE_GENERATE_MAX = 50
    RATE_API_WINDOW_S = 900
    RATE_API_MAX = 100
    RATE_AUTH_WINDOW_S = 900
    RATE_AUTH_MAX = 5

    # ─────────────────────────────────────────────────────────────────────────
    # API
    # ─────────────────────────────────────────────────────────────────────────
    API_PREFIX = "/api/tts"
    API_DEBUG = False
    API_DOWNLOAD_CACHE_SECONDS = 3600

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 40


@dataclass
class ProviderConfig:
    """
    OpenAI speech provider configuration.

    An empty api_key is allowed at startup; synthesis then fails with
    PROVIDER_AUTH_ERROR while health checks keep working.
    """
    api_key: str = ""
    model: str = Defaults.PROVIDER_MODEL
    default_voice: str = Defaults.PROVIDER_DEFAULT_VOICE
    response_format: str = Defaults.PROVIDER_RESPONSE_FORMAT
    timeout_s: float = Defaults.PROVIDER_TIMEOUT_S
    max_retries: int = Defaults.PROVIDER_MAX_RETRIES
    base_url: Optional[str] = None


@dataclass
class TextConfig:
    max_chars: int = Defaults.TEXT_MAX_CHARS
    speed_min: float = Defaults.SPEED_MIN
    speed_max: float = Defaults.SPEED_MAX


@dataclass
class StorageConfig:
    """Directory holding generated MP3 artifacts."""
    base_dir: str = Defaults.STORAGE_BASE_DIR
    extension: str = Defaults.STORAGE_EXTENSION
    chunk_size: int = Defaults.STORAGE_CHUNK_SIZE
    ttl_seconds: int = Defaults.STORAGE_TTL_SECONDS


@dataclass
class LedgerConfig:
    """Generation history database (any SQLAlchemy URL)."""
    url: str = Defaults.LEDGER_URL
    preview_chars: int = Defaults.LEDGER_PREVIEW_CHARS
    default_page_size: int = Defaults.LEDGER_DEFAULT_PAGE_SIZE
    max_page_size: int = Defaults.LEDGER_MAX_PAGE_SIZE
    echo: bool = False


@dataclass
class RateLimitConfig:
    window_seconds: int
    max_requests: int


@dataclass
class RateLimitsConfig:
    """
    The three independently configured limiter instances.

        generate: generation requests per owner
        api: all /api/tts requests per client IP
        auth: failed identity resolutions per client IP
    """
    enabled: bool = True
    generate: RateLimitConfig = field(
        default_factory=lambda: RateLimitConfig(Defaults.RATE_GENERATE_WINDOW_S, Defaults.RATE_GENERATE_MAX)
    )
    api: RateLimitConfig = field(
        default_factory=lambda: RateLimitConfig(Defaults.RATE_API_WINDOW_S, Defaults.RATE_API_MAX)
    )
    auth: RateLimitConfig = field(
        default_factory=lambda: RateLimitConfig(Defaults.RATE_AUTH_WINDOW_S, Defaults.RATE_AUTH_MAX)
    )


@dataclass
class ApiConfig:
    prefix: str = Defaults.API_PREFIX
    debug: bool = Defaults.API_DEBUG
    download_cache_seconds: int = Defaults.API_DOWNLOAD_CACHE_SECONDS


@dataclass
class AuthConfig:
    """Static bearer-token to owner-id map used by the default resolver."""
    tokens: Dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, failures only
        2 = NORMAL: Request lifecycle (default)
        3 = VERBOSE: Per-step timing
        4 = DEBUG: Internal state
    """
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class ServiceConfig:
    """
    Validated configuration for GenerationService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.rate_limits.generate.max_requests)
    """
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    text: TextConfig = field(default_factory=TextConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    rate_limits: RateLimitsConfig = field(default_factory=RateLimitsConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Create ServiceConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated ServiceConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Provider
        # ─────────────────────────────────────────────────────────────────────
        provider_raw = raw.get("provider", {}) or {}
        provider = ProviderConfig(
            api_key=str(provider_raw.get("api_key") or ""),
            model=str(provider_raw.get("model", Defaults.PROVIDER_MODEL)),
            default_voice=str(provider_raw.get("default_voice", Defaults.PROVIDER_DEFAULT_VOICE)),
            response_format=str(provider_raw.get("response_format", Defaults.PROVIDER_RESPONSE_FORMAT)),
            timeout_s=float(provider_raw.get("timeout_s", Defaults.PROVIDER_TIMEOUT_S)),
            max_retries=int(provider_raw.get("max_retries", Defaults.PROVIDER_MAX_RETRIES)),
            base_url=provider_raw.get("base_url") or None,
        )
        cls._validate_positive("provider.timeout_s", provider.timeout_s)
        cls._validate_non_negative("provider.max_retries", provider.max_retries)

        # ─────────────────────────────────────────────────────────────────────
        # Text bounds
        # ─────────────────────────────────────────────────────────────────────
        text_raw = raw.get("text", {}) or {}
        text = TextConfig(
            max_chars=int(text_raw.get("max_chars", Defaults.TEXT_MAX_CHARS)),
            speed_min=float(text_raw.get("speed_min", Defaults.SPEED_MIN)),
            speed_max=float(text_raw.get("speed_max", Defaults.SPEED_MAX)),
        )
        cls._validate_positive("text.max_chars", text.max_chars)
        cls._validate_positive("text.speed_min", text.speed_min)
        if text.speed_min > text.speed_max:
            raise ConfigValidationError(
                f"text.speed_min must not exceed text.speed_max, got {text.speed_min} > {text.speed_max}"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Storage
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            base_dir=str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            extension=str(storage_raw.get("extension", Defaults.STORAGE_EXTENSION)),
            chunk_size=int(storage_raw.get("chunk_size", Defaults.STORAGE_CHUNK_SIZE)),
            ttl_seconds=int(storage_raw.get("ttl_seconds", Defaults.STORAGE_TTL_SECONDS)),
        )
        if not storage.extension.startswith("."):
            raise ConfigValidationError(f"storage.extension must start with '.', got {storage.extension!r}")
        cls._validate_positive("storage.chunk_size", storage.chunk_size)
        cls._validate_positive("storage.ttl_seconds", storage.ttl_seconds)

        # ─────────────────────────────────────────────────────────────────────
        # Ledger
        # ─────────────────────────────────────────────────────────────────────
        ledger_raw = raw.get("ledger", {}) or {}
        ledger = LedgerConfig(
            url=str(ledger_raw.get("url", Defaults.LEDGER_URL)),
            preview_chars=int(ledger_raw.get("preview_chars", Defaults.LEDGER_PREVIEW_CHARS)),
            default_page_size=int(ledger_raw.get("default_page_size", Defaults.LEDGER_DEFAULT_PAGE_SIZE)),
            max_page_size=int(ledger_raw.get("max_page_size", Defaults.LEDGER_MAX_PAGE_SIZE)),
            echo=bool(ledger_raw.get("echo", False)),
        )
        cls._validate_positive("ledger.preview_chars", ledger.preview_chars)
        cls._validate_positive("ledger.default_page_size", ledger.default_page_size)
        cls._validate_range("ledger.default_page_size", ledger.default_page_size, 1, ledger.max_page_size)

        # ─────────────────────────────────────────────────────────────────────
        # Rate limits
        # ─────────────────────────────────────────────────────────────────────
        limits_raw = raw.get("rate_limits", {}) or {}
        rate_limits = RateLimitsConfig(
            enabled=bool(limits_raw.get("enabled", True)),
            generate=cls._rate_limit(limits_raw, "generate", Defaults.RATE_GENERATE_WINDOW_S, Defaults.RATE_GENERATE_MAX),
            api=cls._rate_limit(limits_raw, "api", Defaults.RATE_API_WINDOW_S, Defaults.RATE_API_MAX),
            auth=cls._rate_limit(limits_raw, "auth", Defaults.RATE_AUTH_WINDOW_S, Defaults.RATE_AUTH_MAX),
        )

        # ─────────────────────────────────────────────────────────────────────
        # API
        # ─────────────────────────────────────────────────────────────────────
        api_raw = raw.get("api", {}) or {}
        api = ApiConfig(
            prefix=str(api_raw.get("prefix", Defaults.API_PREFIX)).rstrip("/"),
            debug=bool(api_raw.get("debug", Defaults.API_DEBUG)),
            download_cache_seconds=int(api_raw.get("download_cache_seconds", Defaults.API_DOWNLOAD_CACHE_SECONDS)),
        )
        cls._validate_non_negative("api.download_cache_seconds", api.download_cache_seconds)

        # ─────────────────────────────────────────────────────────────────────
        # Auth
        # ─────────────────────────────────────────────────────────────────────
        auth_raw = raw.get("auth", {}) or {}
        tokens = auth_raw.get("tokens", {}) or {}
        if not isinstance(tokens, dict):
            raise ConfigValidationError("auth.tokens must be a mapping of token -> owner id")
        auth = AuthConfig(tokens={str(k): str(v) for k, v in tokens.items()})

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            level=log_level,
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        return cls(
            provider=provider,
            text=text,
            storage=storage,
            ledger=ledger,
            rate_limits=rate_limits,
            api=api,
            auth=auth,
            logging=logging_cfg,
        )

    @classmethod
    def _rate_limit(cls, limits_raw: Dict[str, Any], name: str, window: int, maximum: int) -> RateLimitConfig:
        section = limits_raw.get(name, {}) or {}
        config = RateLimitConfig(
            window_seconds=int(section.get("window_seconds", window)),
            max_requests=int(section.get("max_requests", maximum)),
        )
        cls._validate_positive(f"rate_limits.{name}.window_seconds", config.window_seconds)
        cls._validate_positive(f"rate_limits.{name}.max_requests", config.max_requests)
        return config

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_service_config() to get the validated ServiceConfig.
    """
    raw: Dict[str, Any]

    @property
    def api_key(self) -> str:
        return str(self.raw.get("provider", {}).get("api_key") or "")

    @property
    def model(self) -> str:
        """Get the OpenAI speech model name."""
        return str(self.raw.get("provider", {}).get("model", Defaults.PROVIDER_MODEL))

    @property
    def default_voice(self) -> str:
        return str(self.raw.get("provider", {}).get("default_voice", Defaults.PROVIDER_DEFAULT_VOICE))

    @property
    def storage_dir(self) -> str:
        return str(self.raw.get("storage", {}).get("base_dir", Defaults.STORAGE_BASE_DIR))

    @property
    def database_url(self) -> str:
        return str(self.raw.get("ledger", {}).get("url", Defaults.LEDGER_URL))

    @property
    def api_prefix(self) -> str:
        return str(self.raw.get("api", {}).get("prefix", Defaults.API_PREFIX)).rstrip("/")

    def get_service_config(self) -> ServiceConfig:
        """
        Get validated ServiceConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ServiceConfig.from_settings(self)


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        raw.setdefault("provider", {})["api_key"] = api_key

    storage_dir = os.getenv("SPEECHMAGIC_STORAGE_DIR")
    if storage_dir:
        raw.setdefault("storage", {})["base_dir"] = storage_dir

    database_url = os.getenv("SPEECHMAGIC_DATABASE_URL")
    if database_url:
        raw.setdefault("ledger", {})["url"] = database_url

    # Generation limiter knobs keep the names operators already use
    window_hours = os.getenv("RATE_LIMIT_WINDOW_HOURS")
    if window_hours:
        generate = raw.setdefault("rate_limits", {}).setdefault("generate", {})
        generate["window_seconds"] = int(float(window_hours) * 3600)
    max_requests = os.getenv("RATE_LIMIT_REQUESTS")
    if max_requests:
        generate = raw.setdefault("rate_limits", {}).setdefault("generate", {})
        generate["max_requests"] = int(max_requests)

    debug = os.getenv("SPEECHMAGIC_DEBUG")
    if debug is not None:
        raw.setdefault("api", {})["debug"] = debug not in ("", "0", "false", "False")


def load_settings(path: str = "config/settings.yaml", required: bool = True) -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - OPENAI_API_KEY: provider.api_key
        - SPEECHMAGIC_STORAGE_DIR: storage.base_dir
        - SPEECHMAGIC_DATABASE_URL: ledger.url
        - RATE_LIMIT_WINDOW_HOURS: rate_limits.generate.window_seconds (hours)
        - RATE_LIMIT_REQUESTS: rate_limits.generate.max_requests
        - SPEECHMAGIC_DEBUG: api.debug

    Args:
        path: Path to the YAML configuration file.
        required: When False, a missing file yields defaults plus
            environment overrides instead of an error.

    Raises:
        FileNotFoundError: If the settings file doesn't exist and is required.
    """
    p = Path(path)
    raw: Dict[str, Any] = {}
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif required:
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    _apply_env_overrides(raw)
    return Settings(raw=raw)
