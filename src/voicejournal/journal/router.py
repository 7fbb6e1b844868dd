"""
Journal read API router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.config import Settings
from voicejournal.dependencies import get_settings
from voicejournal.journal.models import JournalEntry
from voicejournal.journal.repository import JournalEntryRepository
from voicejournal.journal.schemas import JournalEntryResponse, JournalPageResponse
from voicejournal.shared.database import get_db_session
from voicejournal.shared.identity import get_current_user_id
from voicejournal.shared.pagination import PageKey, clamp_page_size, decode_cursor, split_page

router = APIRouter(prefix="/api/journal", tags=["journal"])


def _entry_key(entry: JournalEntry) -> PageKey:
    return PageKey(created_at=entry.created_at, key=entry.entry_id)


@router.get("", response_model=JournalPageResponse)
async def list_journal_entries(
    user_id: Annotated[str, Depends(get_current_user_id)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    limit: Annotated[int | None, Query(ge=1)] = None,
    cursor: Annotated[str | None, Query()] = None,
) -> JournalPageResponse:
    """The user's journal entries, newest first.

    ``cursor`` is the opaque ``nextCursor`` of the previous page.
    """
    size = clamp_page_size(limit, settings.journal_page_size_default, settings.journal_page_size_max)
    after = decode_cursor(cursor) if cursor else None

    rows = await JournalEntryRepository(session).list_by_user(user_id, limit=size + 1, after=after)
    entries, next_cursor = split_page(rows, size, _entry_key)

    return JournalPageResponse(
        entries=[JournalEntryResponse.model_validate(e) for e in entries],
        next_cursor=next_cursor,
    )
