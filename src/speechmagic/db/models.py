"""
Database Models

SQLAlchemy ORM model for the generation ledger.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class GenerationRecord(Base):
    """One completed generation, visible only to its owner."""
    __tablename__ = "audio_generations"

    id = Column(String(36), primary_key=True)                 # uuid4
    owner_id = Column(String(255), nullable=False)
    text_content = Column(Text, nullable=False)
    text_preview = Column(String(128), nullable=False)
    voice_type = Column(String(32), nullable=False)
    speed = Column(Float, nullable=False, default=1.0)
    file_url = Column(String(512), nullable=False)
    filename = Column(String(255), nullable=False)            # includes extension
    file_size = Column(Integer, nullable=False, default=0)    # bytes
    duration_seconds = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_audio_generations_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<GenerationRecord id={self.id} owner={self.owner_id} filename={self.filename}>"
