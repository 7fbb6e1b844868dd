"""
User preference service.

Saving preferences reconciles the user's recurring trigger. If the trigger
service fails, the user is left with no active schedule (no trigger
reference, calls disabled) before the error is surfaced.
"""

import re

from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.scheduling.cron import TIME_PATTERN, is_supported_timezone
from voicejournal.scheduling.reconciler import ScheduleReconciler
from voicejournal.scheduling.triggers import TriggerService
from voicejournal.shared.exceptions import UpstreamError, ValidationError
from voicejournal.shared.logging import get_logger
from voicejournal.users.models import DEFAULT_TIMEZONE, UserPreferences
from voicejournal.users.repository import UserPreferencesRepository
from voicejournal.users.schemas import PreferencesResponse, SavePreferencesRequest

logger = get_logger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def validate_preferences(request: SavePreferencesRequest) -> None:
    """Reject malformed preference fields before any write.

    Raises:
        ValidationError: With a user-correctable message.
    """
    if request.phone_number and not E164_PATTERN.match(request.phone_number):
        raise ValidationError(
            message="Invalid phone number format. Use E.164 format (e.g., +15551234567)",
            details={"field": "phoneNumber"},
        )
    if request.preferred_call_time and not TIME_PATTERN.match(request.preferred_call_time):
        raise ValidationError(
            message="Invalid time format. Use HH:MM (24-hour format)",
            details={"field": "preferredCallTime"},
        )
    if not is_supported_timezone(request.timezone):
        raise ValidationError(
            message=f"Unsupported timezone: {request.timezone}",
            details={"field": "timezone"},
        )
    if request.is_active and not (request.phone_number and request.preferred_call_time):
        raise ValidationError(
            message="Phone number and preferred call time are required to enable daily calls",
            details={"field": "isActive"},
        )


def to_response(user_id: str, prefs: UserPreferences | None) -> PreferencesResponse:
    if prefs is None:
        return PreferencesResponse(user_id=user_id, timezone=DEFAULT_TIMEZONE, is_active=False)
    return PreferencesResponse(
        user_id=prefs.user_id,
        phone_number=prefs.phone_number or "",
        preferred_call_time=prefs.preferred_call_time or "",
        timezone=prefs.timezone,
        is_active=prefs.is_active,
        schedule_ref=prefs.schedule_ref,
        created_at=prefs.created_at,
        updated_at=prefs.updated_at,
    )


class PreferencesService:
    """Read and save user preferences, keeping the trigger in sync."""

    def __init__(self, session: AsyncSession, triggers: TriggerService) -> None:
        """Initialize service.

        Args:
            session: Async database session; committed at each consistency point.
            triggers: Recurring trigger service.
        """
        self._session = session
        self._users = UserPreferencesRepository(session)
        self._reconciler = ScheduleReconciler(triggers=triggers, users=self._users)

    async def get(self, user_id: str) -> PreferencesResponse:
        return to_response(user_id, await self._users.get(user_id))

    async def save(self, user_id: str, request: SavePreferencesRequest) -> PreferencesResponse:
        """Validate, persist and reconcile the user's schedule.

        Raises:
            ValidationError: Malformed or conflicting input (nothing written).
            UpstreamError: Trigger service failed (user left with no active schedule).
        """
        validate_preferences(request)

        phone_number = request.phone_number or None
        if phone_number:
            owner = await self._users.get_by_phone_number(phone_number)
            if owner is not None and owner.user_id != user_id:
                raise ValidationError(
                    message="This phone number is already registered to another account",
                    details={"field": "phoneNumber"},
                )

        await self._users.save(
            user_id=user_id,
            phone_number=phone_number,
            preferred_call_time=request.preferred_call_time or None,
            timezone=request.timezone,
            is_active=request.is_active,
        )
        await self._session.commit()

        try:
            if request.is_active:
                await self._reconciler.update(
                    user_id,
                    phone_number,
                    request.preferred_call_time,
                    request.timezone,
                )
            else:
                await self._reconciler.delete(user_id)
        except UpstreamError:
            await self._session.rollback()
            await self._leave_unscheduled(user_id)
            raise
        await self._session.commit()

        logger.info(
            "Preferences saved",
            extra={"user_id": user_id, "is_active": request.is_active},
        )
        return to_response(user_id, await self._users.get(user_id))

    async def _leave_unscheduled(self, user_id: str) -> None:
        """Best-effort removal of the trigger, then disable calls and clear the reference."""
        try:
            await self._reconciler.delete(user_id)
        except UpstreamError:
            logger.exception("Schedule cleanup failed", extra={"user_id": user_id})

        prefs = await self._users.get(user_id)
        if prefs is not None:
            await self._users.save(
                user_id=user_id,
                phone_number=prefs.phone_number,
                preferred_call_time=prefs.preferred_call_time,
                timezone=prefs.timezone,
                is_active=False,
            )
        await self._users.set_schedule_ref(user_id, None)
        await self._session.commit()
        logger.warning("User left with no active schedule", extra={"user_id": user_id})
