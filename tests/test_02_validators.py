"""
Tests for input validation.

Tests cover:
- validate_text() bounds, blank text, non-string input, counts
- validate_download_filename() traversal and extension rules
- validate_pagination() clamping
"""

import pytest

from speechmagic.services.errors import ErrorCode, InvalidFilenameError
from speechmagic.services.validators import (
    validate_download_filename,
    validate_pagination,
    validate_text,
)


class TestValidateText:
    """Tests for validate_text()."""

    def test_simple_text_is_valid(self):
        """Plain text passes with counts filled in."""
        result = validate_text("Hello world")
        assert result.is_valid is True
        assert result.errors == []
        assert result.character_count == 11
        assert result.word_count == 2

    def test_exactly_max_length_is_valid(self):
        """4096 characters is the inclusive upper bound."""
        result = validate_text("a" * 4096)
        assert result.is_valid is True
        assert result.character_count == 4096

    def test_one_over_max_length(self):
        """4097 characters is rejected."""
        result = validate_text("a" * 4097)
        assert result.is_valid is False
        assert result.errors == ["Text must be 4096 characters or less"]
        assert result.character_count == 4097

    def test_custom_max_length(self):
        """max_length is honoured and named in the message."""
        result = validate_text("abcdef", max_length=5)
        assert result.errors == ["Text must be 5 characters or less"]

    def test_whitespace_only(self):
        """Whitespace-only text is reported as empty."""
        result = validate_text("   \n\t ")
        assert result.is_valid is False
        assert result.errors == ["Text cannot be empty"]
        assert result.word_count == 0

    def test_whitespace_and_too_long_reports_both(self):
        """Every problem is reported, in check order."""
        result = validate_text(" " * 5000)
        assert result.errors == ["Text cannot be empty", "Text must be 4096 characters or less"]

    @pytest.mark.parametrize("value", [None, "", 42, ["hi"], {"text": "hi"}])
    def test_missing_or_non_string(self, value):
        """Missing, empty and non-string input share one message and zero counts."""
        result = validate_text(value)
        assert result.is_valid is False
        assert result.errors == ["Text is required and must be a string"]
        assert result.character_count == 0
        assert result.word_count == 0

    def test_text_is_not_trimmed_for_length(self):
        """Surrounding whitespace counts toward the length."""
        result = validate_text(" hi ")
        assert result.character_count == 4
        assert result.word_count == 1


class TestValidateDownloadFilename:
    """Tests for validate_download_filename()."""

    def test_valid_name(self):
        """A plain .mp3 name is returned unchanged."""
        name = "speech_2024-01-01T00-00-00-000000Z_hello_world_alice.mp3"
        assert validate_download_filename(name) == name

    @pytest.mark.parametrize("name", [
        "../etc/passwd.mp3",
        "a..b.mp3",
        "dir/file.mp3",
        "dir\\file.mp3",
        "file\x00.mp3",
        "",
    ])
    def test_traversal_rejected(self, name):
        """Traversal tokens and separators are rejected."""
        with pytest.raises(InvalidFilenameError) as exc_info:
            validate_download_filename(name)
        assert exc_info.value.code == ErrorCode.INVALID_FILENAME

    @pytest.mark.parametrize("name", ["speech.wav", "speech", "speech.mp3.txt", ".mp3"])
    def test_wrong_extension_rejected(self, name):
        """Only names ending in the artifact extension are accepted."""
        with pytest.raises(InvalidFilenameError):
            validate_download_filename(name)

    def test_custom_extension(self):
        """The extension is configurable."""
        assert validate_download_filename("a.ogg", ".ogg") == "a.ogg"
        with pytest.raises(InvalidFilenameError):
            validate_download_filename("a.mp3", ".ogg")


class TestValidatePagination:
    """Tests for validate_pagination()."""

    def test_defaults(self):
        """None uses the default limit and offset 0."""
        assert validate_pagination(None, None) == (10, 0)

    def test_limit_clamped(self):
        """limit is clamped into [1, max]."""
        assert validate_pagination(0, 0) == (1, 0)
        assert validate_pagination(-5, 0) == (1, 0)
        assert validate_pagination(500, 0) == (100, 0)
        assert validate_pagination(500, 0, max_limit=20) == (20, 0)

    def test_negative_offset(self):
        """Negative offsets become 0."""
        assert validate_pagination(5, -3) == (5, 0)

    def test_passthrough(self):
        """In-range values are kept."""
        assert validate_pagination(25, 50) == (25, 50)
