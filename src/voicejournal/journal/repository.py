"""
Repository for journal entry database operations.
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.journal.models import JournalEntry, new_entry_id
from voicejournal.shared.database import insert_if_absent
from voicejournal.shared.pagination import PageKey, keyset_before


class JournalEntryRepository:
    """Repository for journal entry database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_call_id(self, call_id: str) -> JournalEntry | None:
        stmt = select(JournalEntry).where(JournalEntry.call_id == call_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_if_absent(
        self,
        user_id: str,
        call_id: str,
        transcription: str,
        duration: int | None,
        created_at: datetime | None = None,
    ) -> tuple[JournalEntry, bool]:
        """Create the entry for ``call_id`` unless it already exists.

        Re-delivered transcriptions converge on the first entry.

        Returns:
            Tuple of (entry, created).
        """
        values = {
            "entry_id": new_entry_id(),
            "user_id": user_id,
            "call_id": call_id,
            "transcription": transcription,
            "duration": duration,
        }
        if created_at is not None:
            values["created_at"] = created_at
        created = await insert_if_absent(
            self._session,
            JournalEntry,
            values,
            index_elements=["call_id"],
        )
        entry = await self.get_by_call_id(call_id)
        if entry is None:
            raise RuntimeError(f"Journal entry for call {call_id} vanished after insert")
        return entry, created

    async def list_by_user(
        self,
        user_id: str,
        limit: int,
        after: PageKey | None = None,
    ) -> Sequence[JournalEntry]:
        """List a user's entries newest first, starting after ``after``."""
        stmt = select(JournalEntry).where(JournalEntry.user_id == user_id)
        if after is not None:
            stmt = stmt.where(keyset_before(JournalEntry.created_at, JournalEntry.entry_id, after))
        stmt = stmt.order_by(JournalEntry.created_at.desc(), JournalEntry.entry_id.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()
