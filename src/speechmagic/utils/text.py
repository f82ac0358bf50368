"""
Text Helpers: word counts, previews and artifact filenames.

Filename Format:
    speech_<UTC timestamp>_<slug>_<owner prefix>

    timestamp     YYYY-MM-DDTHH-MM-SS-ffffffZ (":" and "." replaced so the
                  name is portable across filesystems)
    slug          first 30 characters of the text, every character outside
                  [a-zA-Z0-9] replaced by "_", lowercased
    owner prefix  first 8 characters of the owner id after the same
                  sanitization, "anonymous" when no owner is known

Example:
    >>> generate_filename("Hello world", "a1b2c3d4-e5f6", now=datetime(2024, 5, 2, 10, 14, 3, 512000))
    'speech_2024-05-02T10-14-03-512000Z_hello_world_a1b2c3d4'

Two calls in the same microsecond with the same text and owner prefix
produce the same name; the file store refuses to overwrite in that case.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

SLUG_CHARS = 30
OWNER_PREFIX_CHARS = 8
ANONYMOUS_OWNER = "anonymous"


def count_words(text: str) -> int:
    """Whitespace-separated token count."""
    return len(text.split())


def make_preview(text: str, limit: int = 100) -> str:
    """First `limit` characters, with "..." appended when truncated."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def slugify(text: str, limit: int = SLUG_CHARS) -> str:
    return _NON_ALNUM.sub("_", text[:limit]).lower()


def _format_timestamp(now: datetime) -> str:
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-%f") + "Z"


def generate_filename(text: str, owner_id: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Build a practically unique artifact name (without extension).

    Args:
        text: Generation text; only its first 30 characters are used.
        owner_id: Caller identity; "anonymous" when missing.
        now: Timestamp override (UTC assumed when naive).

    Returns:
        Name made only of [A-Za-z0-9_-].
    """
    stamp = _format_timestamp(now or datetime.now(timezone.utc))
    owner = _NON_ALNUM.sub("_", owner_id or ANONYMOUS_OWNER)[:OWNER_PREFIX_CHARS]
    return f"speech_{stamp}_{slugify(text)}_{owner}"
