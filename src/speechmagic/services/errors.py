"""
Error Codes and Exceptions for the Generation Pipeline.

Every failure the pipeline can surface is a SpeechMagicError subclass
carrying a stable code. The API layer maps codes to HTTP statuses;
everything else (including the CLI) can rely on `code` alone.

    INVALID_INPUT          bad text / request body            400
    INVALID_FILENAME       download name rejected             400
    UNAUTHORIZED           no or unknown bearer token         401
    NOT_FOUND              record or artifact missing         404
    RATE_LIMITED           our own limiter denied the call    429
    SYNTHESIS_FAILED       provider rejected the request      500
    STORAGE_ERROR          artifact could not be written      500
    PERSISTENCE_ERROR      ledger operation failed            500
    PROVIDER_AUTH_ERROR    provider credential missing/bad    503
    PROVIDER_RATE_LIMITED  provider throttled us              503
    PROVIDER_UNAVAILABLE   provider down, unreachable, slow   503
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes returned in API error bodies."""
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_FILENAME = "INVALID_FILENAME"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_AUTH_ERROR = "PROVIDER_AUTH_ERROR"
    PROVIDER_RATE_LIMITED = "PROVIDER_RATE_LIMITED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SpeechMagicError(Exception):
    """
    Base exception for generation pipeline errors.

    Attributes:
        message: Human-readable message, safe to show to clients.
        code: Error code from ErrorCode.
        details: Extra context; only exposed to clients in debug mode.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        """Convert to the standard error response body."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if include_details and self.details:
            result["details"] = self.details
        return result


class InvalidInputError(SpeechMagicError):
    """Raised when the request text (or body) fails validation."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class InvalidFilenameError(SpeechMagicError):
    """Raised when a download filename could escape the storage directory."""
    def __init__(self, message: str = "Invalid filename", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_FILENAME, details)


class UnauthorizedError(SpeechMagicError):
    def __init__(self, message: str = "Authentication required", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class NotFoundError(SpeechMagicError):
    """Raised for absent records and for records owned by someone else."""
    def __init__(self, message: str = "Not found", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class RateLimitedError(SpeechMagicError):
    """
    Raised when a rate limiter denies admission.

    Attributes:
        retry_after: Seconds until the caller's window resets.
    """
    def __init__(self, message: str, retry_after: int, details: Optional[Dict] = None):
        self.retry_after = retry_after
        super().__init__(message, ErrorCode.RATE_LIMITED, details)

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        result = super().to_dict(include_details)
        result["retry_after"] = self.retry_after
        return result


class ProviderAuthError(SpeechMagicError):
    def __init__(self, message: str = "Speech provider rejected the configured credentials",
                 details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.PROVIDER_AUTH_ERROR, details)


class ProviderRateLimitedError(SpeechMagicError):
    def __init__(self, message: str = "Speech provider is throttling requests, try again later",
                 details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.PROVIDER_RATE_LIMITED, details)


class ProviderUnavailableError(SpeechMagicError):
    def __init__(self, message: str = "Speech provider is temporarily unavailable",
                 details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.PROVIDER_UNAVAILABLE, details)


class SynthesisFailedError(SpeechMagicError):
    def __init__(self, message: str = "Speech generation failed", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class StorageError(SpeechMagicError):
    """Raised when the audio artifact cannot be written."""
    def __init__(self, message: str = "Failed to store generated audio", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STORAGE_ERROR, details)


class PersistenceError(SpeechMagicError):
    """Raised when the generation ledger cannot be read or written."""
    def __init__(self, message: str = "Failed to save generation record", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.PERSISTENCE_ERROR, details)


# Error code -> HTTP status, used by the API layer
HTTP_STATUS = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_FILENAME: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.SYNTHESIS_FAILED: 500,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.PERSISTENCE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.PROVIDER_AUTH_ERROR: 503,
    ErrorCode.PROVIDER_RATE_LIMITED: 503,
    ErrorCode.PROVIDER_UNAVAILABLE: 503,
}
