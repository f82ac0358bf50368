"""
Request Context and Configuration State for Logging.

The request id lives in a ContextVar so every log line emitted while a
request is being handled (including code running in the thread pool via
run_in_threadpool, which copies the context) carries the same id.

Environment Variables:
    - SPEECHMAGIC_LOG_LEVEL: Override log level (1-4 or name)
    - SPEECHMAGIC_LOG_DIR: Directory for the JSONL log file
    - SPEECHMAGIC_JSONL_FILE: JSONL filename (default: speechmagic.jsonl)
    - SPEECHMAGIC_LOG_ROTATE_BYTES: Max log file size before rotation
    - SPEECHMAGIC_LOG_ROTATE_BACKUP: Number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

# "-" marks log lines emitted outside any request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Get current request ID from context, "-" if unset."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """
    Set request ID in context for log correlation.

    Args:
        rid: Request identifier (12 char UUID prefix in the API layer).
    """
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    """Get current log level as a name ("MINIMAL" ... "DEBUG")."""
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _read_settings_section(path: str) -> Dict[str, Any]:
    """Read the logging section of a settings file, {} when absent."""
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return dict(raw.get("logging", {}) or {})


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration.

    Priority (highest first):
        1. SPEECHMAGIC_LOG_* environment variables
        2. logging section of the settings file (SPEECHMAGIC_SETTINGS)
        3. Defaults applied by configure_logging()

    Returns:
        Dictionary with keys level, log_dir, jsonl_file,
        rotate_max_bytes, rotate_backup_count (only those that are set).
    """
    settings_path = os.getenv("SPEECHMAGIC_SETTINGS", "config/settings.yaml")
    cfg = _read_settings_section(settings_path)

    if os.getenv("SPEECHMAGIC_LOG_LEVEL"):
        cfg["level"] = os.environ["SPEECHMAGIC_LOG_LEVEL"]
    if os.getenv("SPEECHMAGIC_LOG_DIR"):
        cfg["log_dir"] = os.environ["SPEECHMAGIC_LOG_DIR"]
    if os.getenv("SPEECHMAGIC_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["SPEECHMAGIC_JSONL_FILE"]

    rotate_bytes = _env_int("SPEECHMAGIC_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("SPEECHMAGIC_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
