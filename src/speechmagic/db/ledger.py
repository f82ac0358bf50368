"""
Generation Ledger: owner-scoped persistence of generation records.

Every read and delete is filtered by both record id and owner id, so a
record owned by someone else behaves exactly like a missing one. The
API layer turns both into 404, which keeps record ids from leaking.

Backed by any SQLAlchemy URL. SQLite is the default; in-memory SQLite
("sqlite://") uses a StaticPool so every session sees the same database,
which is what the tests rely on.

Usage:
    ledger = GenerationLedger("sqlite:///./data/speechmagic.db")
    record = ledger.save(GenerationRecord(owner_id="u1", text_content="Hi", ...))
    page = ledger.list_by_owner("u1", limit=10, offset=0)
    ledger.delete_by_id(record.id, "u1")
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import create_engine, func, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from speechmagic.core.config import Defaults
from speechmagic.core.logging import debug, error, get_logger, info
from speechmagic.db.models import Base, GenerationRecord
from speechmagic.services.errors import PersistenceError
from speechmagic.utils.text import make_preview

_LOG = get_logger("speechmagic.ledger")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OwnerStats:
    """Aggregate usage for one owner."""
    total_generations: int
    total_duration_seconds: int
    total_file_size_bytes: int
    first_generation: Optional[datetime]
    last_generation: Optional[datetime]


def _engine_kwargs(url: str, echo: bool) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"echo": echo}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return kwargs


class GenerationLedger:
    """
    Repository over the audio_generations table.

    All methods are synchronous; the generation service calls them
    through the thread pool. SQLAlchemy failures are raised as
    PersistenceError.

    Args:
        url: SQLAlchemy database URL.
        preview_chars: Length of text_preview before "..." is appended.
        clock: Source of created_at / updated_at (UTC).
        echo: Log emitted SQL.
    """

    def __init__(
        self,
        url: str = Defaults.LEDGER_URL,
        preview_chars: int = Defaults.LEDGER_PREVIEW_CHARS,
        clock: Callable[[], datetime] = _utcnow,
        echo: bool = False,
    ):
        self._url = url
        self._preview_chars = preview_chars
        self._clock = clock
        try:
            self._engine = create_engine(url, **_engine_kwargs(url, echo))
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            error(_LOG, "ledger_init_failed", url=make_url(url).render_as_string(hide_password=True), error=str(e))
            raise PersistenceError("Generation ledger is unavailable", {"error": str(e)}) from e
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        info(_LOG, "ledger_ready", backend=self._engine.dialect.name)

    @property
    def engine(self):
        return self._engine

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, record: GenerationRecord) -> GenerationRecord:
        """
        Insert a new record.

        Assigns id, text_preview and timestamps; the caller fills in the
        owner, text, voice, speed, file pointer, size and duration.

        Raises:
            PersistenceError: On any storage failure.
        """
        now = self._clock()
        record.id = record.id or str(uuid.uuid4())
        record.text_preview = make_preview(record.text_content, self._preview_chars)
        record.created_at = now
        record.updated_at = now

        try:
            with self._sessions() as session, session.begin():
                session.add(record)
        except SQLAlchemyError as e:
            error(_LOG, "ledger_save_failed", generation_id=record.id, error=str(e))
            raise PersistenceError(details={"error": str(e)}) from e

        debug(_LOG, "ledger_saved", generation_id=record.id, owner=record.owner_id)
        return record

    def delete_by_id(self, generation_id: str, owner_id: str) -> bool:
        """
        Delete a record owned by `owner_id`.

        Returns:
            False when the record is absent or owned by someone else.
        """
        try:
            with self._sessions() as session, session.begin():
                record = session.scalar(
                    select(GenerationRecord).where(
                        GenerationRecord.id == generation_id,
                        GenerationRecord.owner_id == owner_id,
                    )
                )
                if record is None:
                    return False
                session.delete(record)
        except SQLAlchemyError as e:
            error(_LOG, "ledger_delete_failed", generation_id=generation_id, error=str(e))
            raise PersistenceError("Failed to delete generation record", {"error": str(e)}) from e

        debug(_LOG, "ledger_deleted", generation_id=generation_id, owner=owner_id)
        return True

    # =========================================================================
    # Reads
    # =========================================================================

    def get_by_id(self, generation_id: str, owner_id: str) -> Optional[GenerationRecord]:
        """Record `generation_id` if it exists and belongs to `owner_id`."""
        try:
            with self._sessions() as session:
                return session.scalar(
                    select(GenerationRecord).where(
                        GenerationRecord.id == generation_id,
                        GenerationRecord.owner_id == owner_id,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read generation record", {"error": str(e)}) from e

    def list_by_owner(self, owner_id: str, limit: int, offset: int = 0) -> List[GenerationRecord]:
        """Newest-first page of the owner's records; empty when none."""
        stmt = (
            select(GenerationRecord)
            .where(GenerationRecord.owner_id == owner_id)
            .order_by(GenerationRecord.created_at.desc(), GenerationRecord.id.desc())
            .offset(offset)
            .limit(limit)
        )
        try:
            with self._sessions() as session:
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read generation history", {"error": str(e)}) from e

    def count_by_owner(self, owner_id: str) -> int:
        try:
            with self._sessions() as session:
                return int(session.scalar(
                    select(func.count()).select_from(GenerationRecord).where(GenerationRecord.owner_id == owner_id)
                ) or 0)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read generation history", {"error": str(e)}) from e

    def stats_for_owner(self, owner_id: str) -> OwnerStats:
        stmt = select(
            func.count(GenerationRecord.id),
            func.coalesce(func.sum(GenerationRecord.duration_seconds), 0),
            func.coalesce(func.sum(GenerationRecord.file_size), 0),
            func.min(GenerationRecord.created_at),
            func.max(GenerationRecord.created_at),
        ).where(GenerationRecord.owner_id == owner_id)
        try:
            with self._sessions() as session:
                count, duration, size, first, last = session.execute(stmt).one()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read generation statistics", {"error": str(e)}) from e

        return OwnerStats(
            total_generations=int(count),
            total_duration_seconds=int(duration),
            total_file_size_bytes=int(size),
            first_generation=first,
            last_generation=last,
        )

    def ping(self) -> bool:
        """True when the database answers a trivial query."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            error(_LOG, "ledger_ping_failed", error=str(e))
            return False

    def dispose(self) -> None:
        self._engine.dispose()
