"""
SQLAlchemy models for journal entries.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from voicejournal.shared.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_entry_id() -> str:
    return str(uuid4())


class JournalEntry(Base):
    """One entry per completed, transcribed call. Append-only."""

    __tablename__ = "journal_entries"
    __table_args__ = (Index("ix_journal_entries_user_id_created_at", "user_id", "created_at"),)

    entry_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_entry_id,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    # Reference only; the call record may be pruned independently.
    call_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
    )
    transcription: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    duration: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<JournalEntry(entry_id={self.entry_id}, user_id={self.user_id})>"
