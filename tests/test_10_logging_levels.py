"""Tests for the logging level system, formatters and JSONL output."""
from __future__ import annotations

import json
import logging
from pathlib import Path


class TestLogLevelEnum:
    """Test LogLevel enum values."""

    def test_level_enum_values(self):
        """Verify LogLevel enum has correct numeric values."""
        from speechmagic.core.logging import LogLevel

        assert LogLevel.MINIMAL == 1
        assert LogLevel.NORMAL == 2
        assert LogLevel.VERBOSE == 3
        assert LogLevel.DEBUG == 4

    def test_level_map(self):
        """Numeric levels map onto Python logging levels."""
        from speechmagic.core.logging import LEVEL_MAP, LogLevel

        assert LEVEL_MAP[LogLevel.MINIMAL] == logging.WARNING
        assert LEVEL_MAP[LogLevel.NORMAL] == logging.INFO
        assert LEVEL_MAP[LogLevel.VERBOSE] == logging.DEBUG
        assert LEVEL_MAP[LogLevel.DEBUG] == logging.DEBUG - 5


class TestLevelCoercion:
    """Test level coercion from various input types."""

    def test_level_from_int(self):
        from speechmagic.core.logging import LogLevel, coerce_level

        assert coerce_level(1) == LogLevel.MINIMAL
        assert coerce_level(4) == LogLevel.DEBUG

    def test_level_from_names(self):
        """Level names are case-insensitive; Python names are accepted."""
        from speechmagic.core.logging import LogLevel, coerce_level

        assert coerce_level("minimal") == LogLevel.MINIMAL
        assert coerce_level("VERBOSE") == LogLevel.VERBOSE
        assert coerce_level("info") == LogLevel.NORMAL
        assert coerce_level("WARNING") == LogLevel.MINIMAL
        assert coerce_level("trace") == LogLevel.DEBUG

    def test_level_from_numeric_string(self):
        from speechmagic.core.logging import LogLevel, coerce_level

        assert coerce_level("3") == LogLevel.VERBOSE

    def test_python_levels(self):
        from speechmagic.core.logging import LogLevel, coerce_level

        assert coerce_level(logging.ERROR) == LogLevel.MINIMAL
        assert coerce_level(logging.INFO) == LogLevel.NORMAL
        assert coerce_level(logging.DEBUG) == LogLevel.DEBUG

    def test_unknown_falls_back_to_normal(self):
        from speechmagic.core.logging import LogLevel, coerce_level

        assert coerce_level("chatty") == LogLevel.NORMAL
        assert coerce_level(None) == LogLevel.NORMAL


class TestLevelFiltering:
    """Helpers drop messages above the current level."""

    def _capture(self, name: str):
        records = []

        class _Handler(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = logging.getLogger(name)
        handler = _Handler(level=1)
        logger.addHandler(handler)
        return logger, handler, records

    def test_verbose_hidden_at_normal(self):
        from speechmagic.core.logging import LogLevel, get_level, info, set_level, verbose

        logger, handler, records = self._capture("speechmagic.test.filter")
        previous = get_level()
        try:
            set_level(LogLevel.NORMAL)
            info(logger, "shown")
            verbose(logger, "hidden")
            assert [r.getMessage() for r in records] == ["shown"]

            set_level(LogLevel.VERBOSE)
            verbose(logger, "now shown")
            assert records[-1].getMessage() == "now shown"
        finally:
            set_level(previous)
            logger.removeHandler(handler)

    def test_fields_and_request_id_attached(self):
        from speechmagic.core.logging import LogLevel, get_level, set_level, set_request_id, success

        logger, handler, records = self._capture("speechmagic.test.fields")
        previous = get_level()
        try:
            set_level(LogLevel.NORMAL)
            set_request_id("abc123def456")
            success(logger, "generation_completed", seconds=1.25, voice="nova")
            record = records[-1]
            assert record.tag == "SUCCESS"
            assert record.request_id == "abc123def456"
            assert record.seconds == 1.25
            assert record.extra_data == {"voice": "nova"}
        finally:
            set_request_id("-")
            set_level(previous)
            logger.removeHandler(handler)


class TestFormatters:
    """Tests for JsonlFormatter and ColoredConsoleFormatter."""

    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("speechmagic", logging.INFO, __file__, 1, "generation_completed", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_jsonl(self):
        from speechmagic.core.logging import JsonlFormatter

        line = JsonlFormatter().format(self._record(
            tag="SUCCESS", request_id="rid", numeric_level=2, seconds=1.5, extra_data={"bytes": 10},
        ))
        payload = json.loads(line)
        assert payload["tag"] == "SUCCESS"
        assert payload["message"] == "generation_completed"
        assert payload["request_id"] == "rid"
        assert payload["seconds"] == 1.5
        assert payload["extra"] == {"bytes": 10}
        assert "ts" in payload

    def test_console_without_colors(self, monkeypatch):
        from speechmagic.core.logging import ColoredConsoleFormatter, formatters

        monkeypatch.setattr(formatters, "USE_COLORS", False)
        line = ColoredConsoleFormatter().format(self._record(
            tag="WARN", request_id="rid", seconds=0.5, extra_data={"code": "X"},
        ))
        assert "[ WARN  ]" in line
        assert "(rid)" in line
        assert "0.500s" in line
        assert "code=X" in line
        assert "\033[" not in line

    def test_no_color_env(self, monkeypatch):
        from speechmagic.core.logging import supports_color

        monkeypatch.setenv("SPEECHMAGIC_NO_COLOR", "1")
        assert supports_color() is False


class TestLoggingConfig:
    """Tests for read_logging_config() and the JSONL file handler."""

    def test_env_overrides(self, monkeypatch, tmp_path):
        from speechmagic.core.logging import read_logging_config

        monkeypatch.setenv("SPEECHMAGIC_SETTINGS", str(tmp_path / "missing.yaml"))
        monkeypatch.setenv("SPEECHMAGIC_LOG_LEVEL", "4")
        monkeypatch.setenv("SPEECHMAGIC_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("SPEECHMAGIC_JSONL_FILE", "x.jsonl")
        monkeypatch.setenv("SPEECHMAGIC_LOG_ROTATE_BYTES", "1024")
        monkeypatch.setenv("SPEECHMAGIC_LOG_ROTATE_BACKUP", "not-a-number")

        cfg = read_logging_config()
        assert cfg["level"] == "4"
        assert cfg["log_dir"] == str(tmp_path)
        assert cfg["jsonl_file"] == "x.jsonl"
        assert cfg["rotate_max_bytes"] == 1024
        assert "rotate_backup_count" not in cfg

    def test_settings_file_section(self, monkeypatch, tmp_path):
        from speechmagic.core.logging import read_logging_config

        path = tmp_path / "settings.yaml"
        path.write_text("logging:\n  level: 3\n  jsonl_file: app.jsonl\n")
        monkeypatch.setenv("SPEECHMAGIC_SETTINGS", str(path))
        monkeypatch.delenv("SPEECHMAGIC_LOG_LEVEL", raising=False)
        monkeypatch.delenv("SPEECHMAGIC_JSONL_FILE", raising=False)

        cfg = read_logging_config()
        assert cfg["level"] == 3
        assert cfg["jsonl_file"] == "app.jsonl"

    def test_jsonl_file_written(self, monkeypatch, tmp_path):
        """With a log directory configured, records land in the JSONL file."""
        from speechmagic.core.logging import configure_logging, get_level_name, get_log_config, get_logger, info

        monkeypatch.setenv("SPEECHMAGIC_SETTINGS", str(tmp_path / "missing.yaml"))
        monkeypatch.setenv("SPEECHMAGIC_LOG_DIR", str(tmp_path / "logs"))
        monkeypatch.setenv("SPEECHMAGIC_JSONL_FILE", "test.jsonl")
        try:
            configure_logging(level=2, force=True)
            assert get_level_name() == "NORMAL"
            assert get_log_config()["jsonl_file"] == "test.jsonl"
            info(get_logger("speechmagic.test.jsonl"), "persisted_event", answer=42)
            for handler in logging.getLogger().handlers:
                handler.flush()

            lines = Path(tmp_path / "logs" / "test.jsonl").read_text(encoding="utf-8").splitlines()
            payloads = [json.loads(line) for line in lines]
            match = [p for p in payloads if p["message"] == "persisted_event"]
            assert match and match[0]["extra"] == {"answer": 42}
        finally:
            monkeypatch.delenv("SPEECHMAGIC_LOG_DIR")
            for handler in logging.getLogger().handlers:
                handler.close()
            configure_logging(level=2, force=True)
