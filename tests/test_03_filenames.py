"""Tests for artifact filename generation and text helpers."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from speechmagic.utils.text import count_words, generate_filename, make_preview, slugify

SAFE = re.compile(r"^[A-Za-z0-9_-]+$")
FIXED = datetime(2024, 5, 2, 10, 14, 3, 123456, tzinfo=timezone.utc)


class TestGenerateFilename:
    """Tests for generate_filename()."""

    def test_layout(self):
        """speech_<timestamp>_<slug>_<owner>."""
        name = generate_filename("Hello world", "alice", now=FIXED)
        assert name == "speech_2024-05-02T10-14-03-123456Z_hello_world_alice"

    def test_only_safe_characters(self):
        """Punctuation, spaces and unicode are replaced."""
        name = generate_filename("Héllo, wörld! ../../etc", "user@example.com", now=FIXED)
        assert SAFE.match(name)
        assert ".." not in name
        assert "/" not in name

    def test_slug_uses_first_30_characters(self):
        """Only the first 30 characters of the text feed the slug."""
        text = "abcdefghij" * 10
        name = generate_filename(text, "alice", now=FIXED)
        slug = name.split("_")[2]
        assert slug == text[:30]

    def test_owner_prefix_truncated(self):
        """Owner contributes at most 8 characters."""
        name = generate_filename("hi", "abcdefghijklmnop", now=FIXED)
        assert name.endswith("_abcdefgh")

    def test_anonymous_owner(self):
        """A missing owner becomes 'anonymous' (truncated)."""
        name = generate_filename("hi", None, now=FIXED)
        assert name.endswith("_anonymou")

    def test_distinct_timestamps_give_distinct_names(self):
        """Same text and owner at different instants never collide."""
        a = generate_filename("same", "alice", now=FIXED)
        b = generate_filename("same", "alice", now=FIXED + timedelta(microseconds=1))
        assert a != b

    def test_naive_timestamp_treated_as_utc(self):
        """Naive datetimes are formatted as-is."""
        naive = FIXED.replace(tzinfo=None)
        assert generate_filename("x", "o", now=naive) == generate_filename("x", "o", now=FIXED)

    def test_default_now(self):
        """Without now, the current time is used."""
        assert generate_filename("Hello", "alice").startswith("speech_")


class TestTextHelpers:
    """Tests for the small text utilities."""

    def test_count_words(self):
        """Words are whitespace tokens."""
        assert count_words("Hello world") == 2
        assert count_words("  spaced   out  ") == 2
        assert count_words("") == 0

    def test_make_preview_short(self):
        """Short text is returned unchanged."""
        assert make_preview("short", 100) == "short"

    def test_make_preview_truncates(self):
        """Long text is cut to the limit and marked with '...'."""
        assert make_preview("a" * 150, 100) == "a" * 100 + "..."

    def test_slugify(self):
        """Non-alphanumerics become underscores, result lower-cased."""
        assert slugify("Hello, World") == "hello__world"
