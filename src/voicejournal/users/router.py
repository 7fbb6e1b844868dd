"""
Preferences API router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.dependencies import get_trigger_service
from voicejournal.scheduling.triggers import TriggerService
from voicejournal.shared.database import get_db_session
from voicejournal.shared.identity import get_current_user_id
from voicejournal.users.schemas import (
    PreferencesResponse,
    SavePreferencesRequest,
    SavePreferencesResponse,
)
from voicejournal.users.service import PreferencesService

router = APIRouter(prefix="/api/preferences", tags=["preferences"])


def get_preferences_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    triggers: Annotated[TriggerService, Depends(get_trigger_service)],
) -> PreferencesService:
    return PreferencesService(session=session, triggers=triggers)


@router.get("", response_model=PreferencesResponse)
async def get_preferences(
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[PreferencesService, Depends(get_preferences_service)],
) -> PreferencesResponse:
    """Current preferences, or defaults when none were saved yet."""
    return await service.get(user_id)


@router.post("", response_model=SavePreferencesResponse)
async def save_preferences(
    body: SavePreferencesRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[PreferencesService, Depends(get_preferences_service)],
) -> SavePreferencesResponse:
    """Save preferences and reconcile the daily call schedule."""
    preferences = await service.save(user_id, body)
    return SavePreferencesResponse(success=True, preferences=preferences)
