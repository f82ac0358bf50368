"""
API Request/Response Schemas.

Pydantic models for the /api/tts endpoints. JSON field names are
camelCase on the wire (audioUrl, generationId, ...) and snake_case in
Python; every model accepts both on input.

Models:
    GenerateRequest: Input of POST /generate
    GenerateResponse: Output of POST /generate
    GenerationItem: One history record
    GenerationListResponse / GenerationDetailResponse: History reads
    DeleteResponse: Output of DELETE /generations/{id}
    VoiceList: Output of GET /voices
    OwnerStatsResponse: Output of GET /stats

Example Request:
    {
        "text": "Hello world",
        "voice": "nova",
        "speed": 1.0
    }

Text bounds are not enforced here: the generation service validates
text itself so that every problem is reported in one INVALID_INPUT
response, and out-of-range voice/speed values are repaired rather than
rejected.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from speechmagic.db.ledger import OwnerStats
from speechmagic.db.models import GenerationRecord
from speechmagic.services.generation_service import GenerationOutcome
from speechmagic.tts.provider import Voice


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(CamelModel):
    """
    Generation request body.

    Attributes:
        text: Text to speak, 1-4096 characters after validation.
        voice: One of alloy, echo, fable, onyx, nova, shimmer.
            Unknown voices fall back to the default voice.
        speed: 0.25-4.0; anything else falls back to 1.0.
    """
    text: Optional[str] = Field(default=None, description="Text to convert to speech (1-4096 characters)")
    voice: Optional[str] = Field(default=None, description="Voice id, default voice when omitted")
    speed: Optional[float] = Field(default=1.0, description="Playback speed between 0.25 and 4.0")


class GenerateResponse(CamelModel):
    audio_url: str
    filename: str
    generation_id: str
    duration: int = Field(..., description="Estimated duration in seconds")
    file_size: int = Field(..., description="Audio size in bytes")
    character_count: int
    voice: str
    speed: float

    @classmethod
    def from_outcome(cls, outcome: GenerationOutcome) -> "GenerateResponse":
        return cls(
            audio_url=outcome.audio_url,
            filename=outcome.filename,
            generation_id=outcome.generation_id,
            duration=outcome.duration,
            file_size=outcome.file_size,
            character_count=outcome.character_count,
            voice=outcome.voice,
            speed=outcome.speed,
        )


class GenerationItem(CamelModel):
    """A history record as returned to its owner."""
    id: str
    text_preview: str
    text_content: Optional[str] = None
    voice: str
    speed: float
    audio_url: str
    filename: str
    file_size: int
    duration: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: GenerationRecord, include_text: bool = False) -> "GenerationItem":
        return cls(
            id=record.id,
            text_preview=record.text_preview,
            text_content=record.text_content if include_text else None,
            voice=record.voice_type,
            speed=record.speed,
            audio_url=record.file_url,
            filename=record.filename,
            file_size=record.file_size,
            duration=record.duration_seconds,
            created_at=_as_utc(record.created_at),
            updated_at=_as_utc(record.updated_at),
        )


class Pagination(CamelModel):
    limit: int
    offset: int
    total: int


class GenerationListResponse(CamelModel):
    generations: List[GenerationItem]
    pagination: Pagination


class GenerationDetailResponse(CamelModel):
    generation: GenerationItem


class DeleteResponse(CamelModel):
    ok: bool = True
    message: str = "Generation deleted successfully"


class VoiceItem(CamelModel):
    id: str
    name: str
    description: str

    @classmethod
    def from_voice(cls, voice: Voice) -> "VoiceItem":
        return cls(id=voice.id, name=voice.name, description=voice.description)


class VoiceList(CamelModel):
    voices: List[VoiceItem]
    default_voice: str


class OwnerStatsResponse(CamelModel):
    total_generations: int
    total_duration_seconds: int
    total_file_size_bytes: int
    first_generation: Optional[datetime] = None
    last_generation: Optional[datetime] = None

    @classmethod
    def from_stats(cls, stats: OwnerStats) -> "OwnerStatsResponse":
        return cls(
            total_generations=stats.total_generations,
            total_duration_seconds=stats.total_duration_seconds,
            total_file_size_bytes=stats.total_file_size_bytes,
            first_generation=_as_utc(stats.first_generation),
            last_generation=_as_utc(stats.last_generation),
        )
