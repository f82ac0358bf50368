"""
GenerationService - the text-to-speech request pipeline.

This module provides the GenerationService class, the single entry point
for everything the API and CLI do: generating audio, listing, reading
and deleting history records, and resolving downloads.

Architecture:
    Rate check → Validate → Synthesize → Write artifact → Insert record → Outcome

    Each generation walks these states; any step may end in FAILED:

        RECEIVED → RATE_CHECKED → VALIDATED → SYNTHESIZING → PERSISTING → COMPLETED

Failure handling per step:
    1. Limiter denies          → RateLimitedError (retry_after)
    2. Text invalid            → InvalidInputError (all validation errors in details)
    3. Provider fails          → ProviderAuthError / ProviderRateLimitedError /
                                 ProviderUnavailableError / SynthesisFailedError
    4. Artifact write fails    → StorageError, no record is created
    5. Record insert fails     → PersistenceError; the written artifact is
                                 left in place and logged as orphaned_artifact

There are no automatic retries and no state between calls apart from the
limiter counters. Blocking work (file and database I/O) runs in the
Starlette thread pool so the event loop keeps serving other requests.

Example:
    >>> service = GenerationService(load_settings())
    >>> outcome = await service.generate("user-1", "Hello world")
    >>> outcome.duration
    1
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from speechmagic import __version__
from speechmagic.core.config import ServiceConfig, Settings
from speechmagic.core.logging import debug, fail, get_level_name, get_logger, info, success, verbose, warn
from speechmagic.core.metrics import metrics
from speechmagic.db.ledger import GenerationLedger, OwnerStats
from speechmagic.db.models import GenerationRecord
from speechmagic.services.errors import (
    ErrorCode,
    InvalidInputError,
    NotFoundError,
    PersistenceError,
    RateLimitedError,
    SpeechMagicError,
)
from speechmagic.services.validators import TextValidation, validate_pagination, validate_text
from speechmagic.tts.provider import SynthesisClient, Voice, estimate_duration
from speechmagic.tts.ratelimit import RateLimiters
from speechmagic.tts.storage import FileStore
from speechmagic.utils.text import generate_filename
from speechmagic.utils.timeit import Stopwatch, timeit

_LOG = get_logger("speechmagic.service")


# =============================================================================
# Pipeline Types
# =============================================================================

class GenerationState(str, Enum):
    RECEIVED = "received"
    RATE_CHECKED = "rate_checked"
    VALIDATED = "validated"
    SYNTHESIZING = "synthesizing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    """
    Result of a completed generation.

    Attributes:
        audio_url: Download pointer under the API prefix.
        filename: Artifact filename including extension.
        generation_id: Ledger record id.
        duration: Estimated spoken length in seconds.
        file_size: Artifact size in bytes.
        character_count: Length of the submitted text.
        voice: Voice actually used (after fallback).
        speed: Speed actually used (after fallback).
        timings: Seconds spent per pipeline step.
    """
    audio_url: str
    filename: str
    generation_id: str
    duration: int
    file_size: int
    character_count: int
    voice: str
    speed: float
    timings: Dict[str, float] = field(default_factory=dict)


@dataclass
class GenerationPage:
    """One page of an owner's history, newest first."""
    records: List[GenerationRecord]
    limit: int
    offset: int
    total: int


class _Tracker:
    """Walks a generation through its states and logs each transition."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        self.state = GenerationState.RECEIVED

    def advance(self, state: GenerationState) -> None:
        debug(_LOG, "state", previous=self.state.value, current=state.value)
        self.state = state


# =============================================================================
# Main Service Class
# =============================================================================

class GenerationService:
    """
    Orchestrates generation, history and download operations.

    Collaborators are built from settings unless injected, which is how
    tests swap in a fake provider client, a temporary store and an
    in-memory ledger.

    Attributes:
        config: Validated ServiceConfig.
        client: SynthesisClient for the speech provider.
        store: FileStore for MP3 artifacts.
        ledger: GenerationLedger for records.
        limiters: generate / api / auth RateLimiters.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[SynthesisClient] = None,
        store: Optional[FileStore] = None,
        ledger: Optional[GenerationLedger] = None,
        limiters: Optional[RateLimiters] = None,
    ):
        self._settings = settings
        self.config = ServiceConfig.from_settings(settings)
        cfg = self.config

        self.client = client or SynthesisClient(cfg.provider, speed_bounds=(cfg.text.speed_min, cfg.text.speed_max))
        self.store = store or FileStore(cfg.storage.base_dir, cfg.storage.extension, cfg.storage.chunk_size)
        self.ledger = ledger or GenerationLedger(cfg.ledger.url, cfg.ledger.preview_chars, echo=cfg.ledger.echo)
        self.limiters = limiters or RateLimiters(cfg.rate_limits)

        info(
            _LOG, "service_init",
            model=self.client.model,
            provider_configured=self.client.configured,
            storage=str(self.store.base_dir),
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    def download_url(self, filename: str) -> str:
        return f"{self.config.api.prefix}/download/{filename}"

    def _preview(self, text: str) -> str:
        chars = self.config.logging.text_preview_chars
        return text[:chars] if chars > 0 else ""

    # =========================================================================
    # Public API: generate()
    # =========================================================================

    def validate(self, text: Any) -> TextValidation:
        return validate_text(text, self.config.text.max_chars)

    async def generate(
        self,
        owner_id: str,
        text: Any,
        voice: Optional[str] = None,
        speed: Optional[float] = None,
    ) -> GenerationOutcome:
        """
        Run the full generation pipeline for one request.

        Args:
            owner_id: Resolved caller identity.
            text: Text to speak; validated here.
            voice: Requested voice, falls back to the default voice.
            speed: Requested speed, falls back to 1.0.

        Returns:
            GenerationOutcome with the download pointer and metadata.

        Raises:
            RateLimitedError, InvalidInputError, provider errors,
            StorageError, PersistenceError. Unexpected exceptions are
            wrapped as INTERNAL_ERROR.
        """
        tracker = _Tracker(owner_id)
        watch = Stopwatch()
        try:
            outcome = await self._run_pipeline(tracker, watch, owner_id, text, voice, speed)
        except SpeechMagicError as e:
            tracker.advance(GenerationState.FAILED)
            metrics.record_generation("error", watch.elapsed())
            metrics.record_failure(e.code)
            fail(_LOG, "generation_failed", code=e.code, error=e.message, seconds=round(watch.elapsed(), 3))
            raise
        except Exception as e:
            tracker.advance(GenerationState.FAILED)
            metrics.record_generation("error", watch.elapsed())
            metrics.record_failure(ErrorCode.INTERNAL_ERROR)
            fail(_LOG, "generation_failed", code=ErrorCode.INTERNAL_ERROR, error=str(e), error_type=type(e).__name__)
            raise SpeechMagicError("Internal server error", ErrorCode.INTERNAL_ERROR,
                                   {"error_type": type(e).__name__}) from e

        tracker.advance(GenerationState.COMPLETED)
        metrics.record_generation("success", watch.elapsed(), outcome.file_size)
        success(
            _LOG, "generation_completed",
            generation_id=outcome.generation_id,
            bytes=outcome.file_size,
            voice=outcome.voice,
            seconds=round(watch.elapsed(), 3),
        )
        return outcome

    async def _run_pipeline(
        self,
        tracker: _Tracker,
        watch: Stopwatch,
        owner_id: str,
        text: Any,
        voice: Optional[str],
        speed: Optional[float],
    ) -> GenerationOutcome:
        # ─────────────────────────────────────────────────────────────────────
        # Step 1: Rate check
        # ─────────────────────────────────────────────────────────────────────
        if self.limiters.enabled:
            decision = self.limiters.generate.admit(owner_id)
            if not decision.allowed:
                metrics.record_rate_limited("generate")
                raise RateLimitedError(
                    "Too many TTS requests, please try again later",
                    retry_after=decision.retry_after,
                    details={
                        "limit": decision.limit,
                        "window_seconds": self.limiters.generate.window_seconds,
                    },
                )
        tracker.advance(GenerationState.RATE_CHECKED)

        # ─────────────────────────────────────────────────────────────────────
        # Step 2: Validate
        # ─────────────────────────────────────────────────────────────────────
        validation = self.validate(text)
        if not validation.is_valid:
            raise InvalidInputError("Invalid text input", {"errors": validation.errors})
        tracker.advance(GenerationState.VALIDATED)

        voice, speed = self.client.resolve(voice, speed)
        info(_LOG, "generation_started", chars=validation.character_count, voice=voice, speed=speed,
             text_preview=self._preview(text))

        # ─────────────────────────────────────────────────────────────────────
        # Step 3: Synthesize
        # ─────────────────────────────────────────────────────────────────────
        tracker.advance(GenerationState.SYNTHESIZING)
        filename = generate_filename(text, owner_id)
        with timeit("synthesize") as t_synth:
            audio = await self.client.synthesize(text, voice, speed)
        metrics.observe_provider(watch.record(t_synth))
        verbose(_LOG, "step", event="synthesize", seconds=round(t_synth.seconds, 4), bytes=len(audio))

        # ─────────────────────────────────────────────────────────────────────
        # Step 4: Write artifact
        # ─────────────────────────────────────────────────────────────────────
        tracker.advance(GenerationState.PERSISTING)
        with timeit("store") as t_store:
            path = await run_in_threadpool(self.store.write, audio, filename)
        watch.record(t_store)
        verbose(_LOG, "step", event="store", seconds=round(t_store.seconds, 4))

        # ─────────────────────────────────────────────────────────────────────
        # Step 5: Insert record
        # ─────────────────────────────────────────────────────────────────────
        artifact_name = path.name
        audio_url = self.download_url(artifact_name)
        duration = estimate_duration(text, speed)
        record = GenerationRecord(
            owner_id=owner_id,
            text_content=text,
            voice_type=voice,
            speed=speed,
            file_url=audio_url,
            filename=artifact_name,
            file_size=len(audio),
            duration_seconds=duration,
        )
        try:
            with timeit("ledger") as t_ledger:
                record = await run_in_threadpool(self.ledger.save, record)
        except PersistenceError:
            # The artifact stays on disk; external cleanup removes it eventually
            warn(_LOG, "orphaned_artifact", filename=artifact_name, owner=owner_id)
            raise
        watch.record(t_ledger)
        verbose(_LOG, "step", event="ledger", seconds=round(t_ledger.seconds, 4))

        return GenerationOutcome(
            audio_url=audio_url,
            filename=artifact_name,
            generation_id=record.id,
            duration=duration,
            file_size=len(audio),
            character_count=validation.character_count,
            voice=voice,
            speed=speed,
            timings=dict(watch.steps),
        )

    # =========================================================================
    # History
    # =========================================================================

    async def list_generations(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> GenerationPage:
        """Newest-first page of the owner's records, with the owner's total count."""
        limit, offset = validate_pagination(
            limit, offset, self.config.ledger.default_page_size, self.config.ledger.max_page_size
        )
        records = await run_in_threadpool(self.ledger.list_by_owner, owner_id, limit, offset)
        total = await run_in_threadpool(self.ledger.count_by_owner, owner_id)
        verbose(_LOG, "history_listed", returned=len(records), total=total, limit=limit, offset=offset)
        return GenerationPage(records=records, limit=limit, offset=offset, total=total)

    async def get_generation(self, owner_id: str, generation_id: str) -> GenerationRecord:
        """
        Raises:
            NotFoundError: Absent, or owned by someone else.
        """
        record = await run_in_threadpool(self.ledger.get_by_id, generation_id, owner_id)
        if record is None:
            raise NotFoundError("Generation not found")
        return record

    async def delete_generation(self, owner_id: str, generation_id: str) -> None:
        """
        Delete the artifact (best effort), then the record.

        A missing or undeletable artifact does not stop the record from
        being deleted.

        Raises:
            NotFoundError: Absent, or owned by someone else.
        """
        record = await self.get_generation(owner_id, generation_id)

        removed = await run_in_threadpool(self.store.delete, record.filename)
        metrics.record_artifact_deleted(removed)

        if not await run_in_threadpool(self.ledger.delete_by_id, generation_id, owner_id):
            # Deleted concurrently between lookup and delete
            raise NotFoundError("Generation not found")
        info(_LOG, "generation_deleted", generation_id=generation_id, artifact_removed=removed)

    async def get_stats(self, owner_id: str) -> OwnerStats:
        return await run_in_threadpool(self.ledger.stats_for_owner, owner_id)

    # =========================================================================
    # Downloads and catalogue
    # =========================================================================

    async def open_download(self, filename: str) -> Tuple[Iterator[bytes], int]:
        """
        Resolve a download name to a byte stream.

        Not owner-scoped: anyone holding the filename may download it.

        Raises:
            InvalidFilenameError: Rejected before any filesystem access.
            NotFoundError: No such artifact.
        """
        return await run_in_threadpool(self.store.open_stream, filename)

    def list_voices(self) -> List[Voice]:
        return self.client.list_voices()

    def cleanup_artifacts(self, max_age_seconds: Optional[int] = None) -> Dict[str, int]:
        """Remove artifacts older than max_age_seconds (storage.ttl_seconds by default)."""
        age = max_age_seconds if max_age_seconds is not None else self.config.storage.ttl_seconds
        return self.store.cleanup_expired(age)

    # =========================================================================
    # Health Check
    # =========================================================================

    def get_health_info(self, detailed: bool = False) -> Dict[str, Any]:
        """
        Service status for /health.

        The basic form answers whether the ledger is reachable. The
        detailed form adds provider, storage and limiter state.
        """
        ledger_ok = self.ledger.ping()
        result: Dict[str, Any] = {
            "ok": ledger_ok,
            "service": "speechmagic",
            "version": __version__,
        }
        if not detailed:
            return result

        result["provider"] = {
            "configured": self.client.configured,
            "model": self.client.model,
            "default_voice": self.client.default_voice,
        }
        result["storage"] = self.store.get_storage_info()
        result["ledger"] = {"ok": ledger_ok}
        result["rate_limits"] = {
            name: {
                "window_seconds": stats.window_seconds,
                "max_requests": stats.max_requests,
                "total_admitted": stats.total_admitted,
                "total_rejected": stats.total_rejected,
            }
            for name, stats in ((n, limiter.stats()) for n, limiter in self.limiters.all().items())
        }
        result["rate_limits"]["enabled"] = self.limiters.enabled
        result["log_level"] = get_level_name()
        return result


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[GenerationService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> GenerationService:
    """
    Get or create the global GenerationService instance.

    Thread-safe lazy singleton; the settings of the first call win.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = GenerationService(settings)
    return _service


def reset_service() -> None:
    """Drop the global service instance (tests)."""
    global _service
    with _service_lock:
        _service = None
