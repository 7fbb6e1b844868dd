"""
Call history API router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.calls.models import CallRecord
from voicejournal.calls.repository import CallRecordRepository
from voicejournal.config import Settings
from voicejournal.dependencies import get_settings
from voicejournal.journal.schemas import CallPageResponse, CallRecordResponse
from voicejournal.shared.database import get_db_session
from voicejournal.shared.identity import get_current_user_id
from voicejournal.shared.pagination import PageKey, clamp_page_size, decode_cursor, split_page

router = APIRouter(prefix="/api/calls", tags=["calls"])


def _call_key(record: CallRecord) -> PageKey:
    return PageKey(created_at=record.timestamp, key=record.call_id)


@router.get("", response_model=CallPageResponse)
async def list_calls(
    user_id: Annotated[str, Depends(get_current_user_id)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    limit: Annotated[int | None, Query(ge=1)] = None,
    cursor: Annotated[str | None, Query()] = None,
) -> CallPageResponse:
    """The user's calls, newest first."""
    size = clamp_page_size(limit, settings.journal_page_size_default, settings.journal_page_size_max)
    after = decode_cursor(cursor) if cursor else None

    rows = await CallRecordRepository(session).list_by_user(user_id, limit=size + 1, after=after)
    calls, next_cursor = split_page(rows, size, _call_key)

    return CallPageResponse(
        calls=[CallRecordResponse.model_validate(c) for c in calls],
        next_cursor=next_cursor,
    )
