"""
SQLAlchemy models for call records.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from voicejournal.shared.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Call lifecycle status."""

    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"


TERMINAL_STATUSES: frozenset[CallStatus] = frozenset(
    {
        CallStatus.COMPLETED,
        CallStatus.FAILED,
        CallStatus.BUSY,
        CallStatus.NO_ANSWER,
    }
)


class CallDirection(str, Enum):
    """Who placed the call."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class CallRecord(Base):
    """One row per telephone call attempt, keyed by the provider call id."""

    __tablename__ = "calls"
    __table_args__ = (Index("ix_calls_user_id_timestamp", "user_id", "timestamp"),)

    call_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
    )
    provider: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    direction: Mapped[CallDirection] = mapped_column(
        SQLEnum(
            CallDirection,
            name="call_direction",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    status: Mapped[CallStatus] = mapped_column(
        SQLEnum(
            CallStatus,
            name="call_status",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=CallStatus.INITIATED,
    )
    from_number: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    to_number: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    duration: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    recording_ref: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    recording_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )
    transcription_text: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<CallRecord(call_id={self.call_id}, user_id={self.user_id}, status={self.status})>"
