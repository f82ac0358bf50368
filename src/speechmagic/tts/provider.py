"""
OpenAI Speech Provider Client.

Wraps `AsyncOpenAI.audio.speech.create` with the policies the generation
pipeline relies on:

    - Unknown voices fall back to the default voice (logged, not an error)
    - Speeds outside [0.25, 4.0] fall back to 1.0 (logged, not an error)
    - Every call is bounded by provider.timeout_s
    - Provider failures are classified into pipeline error kinds:

        401 / 403                     -> ProviderAuthError
        429                           -> ProviderRateLimitedError
        5xx, connection error, timeout -> ProviderUnavailableError
        anything else                 -> SynthesisFailedError

The raw provider message is logged and kept in `details`; the message
shown to clients is the classified one.

Usage:
    client = SynthesisClient(ProviderConfig(api_key="sk-..."))
    audio = await client.synthesize("Hello world", voice="nova", speed=1.0)
    seconds = estimate_duration("Hello world", speed=1.0)   # -> 1
"""
from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from speechmagic.core.config import Defaults, ProviderConfig
from speechmagic.core.logging import debug, fail, get_logger, info, warn
from speechmagic.services.errors import (
    ProviderAuthError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
    SpeechMagicError,
    SynthesisFailedError,
)
from speechmagic.utils.text import count_words
from speechmagic.utils.timeit import timeit

_LOG = get_logger("speechmagic.provider")

# Average speaking rate used for duration estimates
WORDS_PER_MINUTE = 150


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    description: str


VOICES: Tuple[Voice, ...] = (
    Voice("alloy", "Alloy", "Neutral voice"),
    Voice("echo", "Echo", "Male voice"),
    Voice("fable", "Fable", "British accent"),
    Voice("onyx", "Onyx", "Deep male voice"),
    Voice("nova", "Nova", "Professional female voice (recommended)"),
    Voice("shimmer", "Shimmer", "Warm female voice"),
)

VOICE_IDS = frozenset(v.id for v in VOICES)


def estimate_duration(text: str, speed: float = Defaults.SPEED_DEFAULT) -> int:
    """
    Rough spoken duration in whole seconds.

    ceil(words / (150 * speed) * 60), words being whitespace tokens.
    """
    return math.ceil(count_words(text) / (WORDS_PER_MINUTE * speed) * 60)


def resolve_voice(voice: Optional[str], default_voice: str = Defaults.PROVIDER_DEFAULT_VOICE) -> str:
    """Return `voice` if the provider knows it, else the default voice."""
    if voice is None:
        return default_voice
    if voice not in VOICE_IDS:
        warn(_LOG, "voice_repaired", requested=voice, used=default_voice)
        return default_voice
    return voice


def resolve_speed(
    speed: Optional[float],
    minimum: float = Defaults.SPEED_MIN,
    maximum: float = Defaults.SPEED_MAX,
) -> float:
    """Return `speed` if within [minimum, maximum], else 1.0."""
    if speed is None:
        return Defaults.SPEED_DEFAULT
    if isinstance(speed, bool) or not isinstance(speed, (int, float)) or math.isnan(speed) \
            or not (minimum <= speed <= maximum):
        warn(_LOG, "speed_repaired", requested=speed, used=Defaults.SPEED_DEFAULT)
        return Defaults.SPEED_DEFAULT
    return float(speed)


def classify_provider_error(exc: Exception) -> SpeechMagicError:
    """Map an openai SDK exception to a pipeline error."""
    details: Dict[str, Any] = {"provider_error": str(exc), "error_type": type(exc).__name__}

    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderAuthError(details=details)
    if isinstance(exc, openai.RateLimitError):
        return ProviderRateLimitedError(details=details)
    if isinstance(exc, openai.APIConnectionError):
        # includes APITimeoutError
        return ProviderUnavailableError(details=details)
    if isinstance(exc, openai.APIStatusError):
        details["status_code"] = exc.status_code
        if exc.status_code >= 500:
            return ProviderUnavailableError(details=details)
    return SynthesisFailedError(details=details)


class SynthesisClient:
    """
    Async client for the OpenAI speech endpoint.

    The underlying AsyncOpenAI client is created lazily so the service can
    start (and report health) without a credential. A missing credential
    surfaces as ProviderAuthError on the first synthesis.

    Args:
        config: Provider configuration.
        client: Optional pre-built client exposing `audio.speech.create`
            (used by tests and by callers sharing one AsyncOpenAI).
    """

    def __init__(self, config: Optional[ProviderConfig] = None, client: Optional[Any] = None,
                 speed_bounds: Tuple[float, float] = (Defaults.SPEED_MIN, Defaults.SPEED_MAX)):
        self._config = config or ProviderConfig()
        self._client = client
        self._speed_min, self._speed_max = speed_bounds

    @property
    def configured(self) -> bool:
        """True when a client was injected or an API key is set."""
        return self._client is not None or bool(self._config.api_key)

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def default_voice(self) -> str:
        return self._config.default_voice

    def list_voices(self) -> List[Voice]:
        return list(VOICES)

    def resolve(self, voice: Optional[str], speed: Optional[float]) -> Tuple[str, float]:
        """Apply the voice and speed fallback rules."""
        return (
            resolve_voice(voice, self._config.default_voice),
            resolve_speed(speed, self._speed_min, self._speed_max),
        )

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._config.api_key:
                raise ProviderAuthError("Speech provider credentials are not configured")
            self._client = AsyncOpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                max_retries=self._config.max_retries,
                timeout=self._config.timeout_s,
            )
        return self._client

    async def synthesize(self, text: str, voice: Optional[str] = None, speed: Optional[float] = None) -> bytes:
        """
        Generate MP3 audio for `text`.

        Args:
            text: Already validated text.
            voice: Requested voice, repaired to the default when unknown.
            speed: Requested speed, repaired to 1.0 when out of range.

        Returns:
            Encoded audio bytes.

        Raises:
            ProviderAuthError, ProviderRateLimitedError,
            ProviderUnavailableError, SynthesisFailedError
        """
        voice, speed = self.resolve(voice, speed)
        client = self._get_client()

        info(_LOG, "provider_request", chars=len(text), voice=voice, speed=speed, model=self._config.model)
        try:
            with timeit("provider") as t:
                response = await asyncio.wait_for(
                    client.audio.speech.create(
                        model=self._config.model,
                        voice=voice,
                        input=text,
                        response_format=self._config.response_format,
                        speed=speed,
                    ),
                    timeout=self._config.timeout_s,
                )
        except asyncio.TimeoutError:
            fail(_LOG, "provider_timeout", timeout_s=self._config.timeout_s)
            raise ProviderUnavailableError(
                "Speech provider did not respond in time",
                details={"timeout_s": self._config.timeout_s},
            )
        except openai.OpenAIError as e:
            mapped = classify_provider_error(e)
            fail(_LOG, "provider_failed", code=mapped.code, error=str(e), error_type=type(e).__name__)
            raise mapped from e

        audio = response.content
        debug(_LOG, "provider_response", bytes=len(audio), seconds=round(t.seconds, 3))
        return audio
