"""
Input Validation for the Generation Pipeline.

Validation runs before any provider or filesystem work so that bad
requests are rejected cheaply and never reach the paid API.

Rules:
    - Text: required string, not blank after trimming, at most 4096
      characters (the untrimmed length counts, matching what the
      provider would receive)
    - Download filename: no "..", no path separators, must end in the
      artifact extension (".mp3")
    - Pagination: limit clamped to [1, max], offset clamped to >= 0

validate_text() reports problems instead of raising, so callers can
show every error at once (the CLI dry run prints them all). The
orchestrator turns an invalid result into InvalidInputError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from speechmagic.core.config import Defaults
from speechmagic.core.logging import get_logger, warn
from speechmagic.services.errors import InvalidFilenameError
from speechmagic.utils.text import count_words

_LOG = get_logger("speechmagic.validators")


@dataclass
class TextValidation:
    """
    Outcome of validate_text().

    Attributes:
        is_valid: True when errors is empty.
        errors: Human-readable problems, in check order.
        character_count: len(text), 0 for non-string input.
        word_count: Whitespace-separated tokens, 0 for non-string input.
    """
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    character_count: int = 0
    word_count: int = 0


def validate_text(text: Any, max_length: int = Defaults.TEXT_MAX_CHARS) -> TextValidation:
    """
    Validate generation text without mutating it.

    Args:
        text: Candidate text (anything; non-strings are rejected).
        max_length: Maximum allowed characters.

    Returns:
        TextValidation with is_valid, errors and counts.
    """
    if not isinstance(text, str) or not text:
        return TextValidation(is_valid=False, errors=["Text is required and must be a string"])

    errors: List[str] = []
    if not text.strip():
        errors.append("Text cannot be empty")
    if len(text) > max_length:
        errors.append(f"Text must be {max_length} characters or less")

    return TextValidation(
        is_valid=not errors,
        errors=errors,
        character_count=len(text),
        word_count=count_words(text),
    )


def validate_download_filename(filename: Optional[str], extension: str = Defaults.STORAGE_EXTENSION) -> str:
    """
    Check a client-supplied download name before touching the filesystem.

    Args:
        filename: Name from the URL path.
        extension: Required suffix, e.g. ".mp3".

    Returns:
        The unchanged filename.

    Raises:
        InvalidFilenameError: On traversal tokens, separators, or a wrong extension.
    """
    if not filename or ".." in filename or "/" in filename or "\\" in filename or "\x00" in filename:
        warn(_LOG, "download_rejected", filename=filename, reason="traversal")
        raise InvalidFilenameError("Invalid filename")
    if not filename.endswith(extension) or filename == extension:
        warn(_LOG, "download_rejected", filename=filename, reason="extension")
        raise InvalidFilenameError("Invalid filename")
    return filename


def validate_pagination(
    limit: Optional[int],
    offset: Optional[int],
    default_limit: int = Defaults.LEDGER_DEFAULT_PAGE_SIZE,
    max_limit: int = Defaults.LEDGER_MAX_PAGE_SIZE,
) -> Tuple[int, int]:
    """Clamp limit into [1, max_limit] and offset to >= 0."""
    if limit is None:
        limit = default_limit
    limit = max(1, min(int(limit), max_limit))
    offset = max(0, int(offset or 0))
    return limit, offset
