"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line, for the rotating log file.
    ColoredConsoleFormatter: human-readable terminal lines.

Output Examples:
    JSONL (file):
        {"ts":"2024-05-02T10:14:03+00:00","level":2,"tag":"SUCCESS","message":"generation_completed","request_id":"4f0c9a1be2d3","seconds":1.82,"extra":{"voice":"nova","bytes":48213}}

    Console:
        10:14:03 [SUCCESS] (4f0c9a1be2d3) generation_completed 1.820s voice=nova bytes=48213

Colors are disabled when stdout is not a TTY, when NO_COLOR is set, or
when SPEECHMAGIC_NO_COLOR=1.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict


class Colors:
    """ANSI escape codes used by the console formatter."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    GRAY = "\033[90m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
}

# Fields whose values are highlighted on the console
_HIGHLIGHT_KEYS = {"error", "code", "status"}


def supports_color() -> bool:
    """Check whether ANSI colors should be written to stdout."""
    if os.getenv("SPEECHMAGIC_NO_COLOR", "0") == "1":
        return False
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    if isatty is None or not isatty():
        return False
    return sys.platform != "win32" or "WT_SESSION" in os.environ


# Re-evaluated by configure_logging(); tests may flip it directly
USE_COLORS = supports_color()


def colorize(text: str, color: str) -> str:
    """Wrap text in an ANSI color when colors are enabled."""
    if not USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


def get_tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag.upper(), Colors.WHITE)


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines.

    Keys: ts, level, tag, message, request_id and, when present,
    event, seconds and extra.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records for the terminal.

    Output Format:
        HH:MM:SS [  TAG  ] (rid) message 0.123s key=value
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            colorize(ts, Colors.DIM),
            colorize(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(colorize(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(colorize(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            parts.append(colorize(f"{seconds:.3f}s", self._timing_color(seconds)))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                color = Colors.YELLOW if key in _HIGHLIGHT_KEYS else Colors.DIM
                parts.append(colorize(f"{key}={value}", color))

        return " ".join(parts)

    @staticmethod
    def _timing_color(seconds: float) -> str:
        # Provider round trips dominate, so thresholds are wider than for local work
        if seconds < 1.0:
            return Colors.GREEN
        if seconds < 5.0:
            return Colors.YELLOW
        return Colors.RED
