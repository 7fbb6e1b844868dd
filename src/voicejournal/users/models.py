"""
SQLAlchemy models for user call preferences.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from voicejournal.shared.database import Base

DEFAULT_TIMEZONE = "America/New_York"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserPreferences(Base):
    """Per-user call preferences.

    ``schedule_ref`` holds the handle of the user's recurring trigger and is
    written only by the schedule reconciler.
    """

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    phone_number: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        unique=True,
        index=True,
    )
    preferred_call_time: Mapped[str | None] = mapped_column(
        String(5),
        nullable=True,
    )
    timezone: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default=DEFAULT_TIMEZONE,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    schedule_ref: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
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
        return f"<UserPreferences(user_id={self.user_id}, active={self.is_active})>"
