"""
Repository for user preference database operations.
"""

from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.users.models import UserPreferences


class UserPreferencesRepositoryProtocol(Protocol):
    """Protocol for user preference operations used by the core."""

    async def get(self, user_id: str) -> UserPreferences | None:
        """Get preferences by user id."""
        ...

    async def get_by_phone_number(self, phone_number: str) -> UserPreferences | None:
        """Get preferences by exact phone number."""
        ...

    async def set_schedule_ref(self, user_id: str, schedule_ref: str | None) -> bool:
        """Persist the recurring trigger handle for a user."""
        ...


class UserPreferencesRepository:
    """Repository for user preference database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get(self, user_id: str) -> UserPreferences | None:
        """Get preferences by user id.

        Args:
            user_id: External user identifier.

        Returns:
            UserPreferences if found, None otherwise.
        """
        stmt = (
            select(UserPreferences)
            .where(UserPreferences.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_phone_number(self, phone_number: str) -> UserPreferences | None:
        """Get preferences by exact phone number (unique index lookup).

        Args:
            phone_number: E.164 phone number.

        Returns:
            UserPreferences if found, None otherwise.
        """
        stmt = select(UserPreferences).where(UserPreferences.phone_number == phone_number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(
        self,
        user_id: str,
        phone_number: str | None,
        preferred_call_time: str | None,
        timezone: str,
        is_active: bool,
    ) -> UserPreferences:
        """Create or update a user's preferences.

        ``schedule_ref`` is left untouched; only the reconciler writes it.
        """
        prefs = await self.get(user_id)
        if prefs is None:
            prefs = UserPreferences(user_id=user_id)
            self._session.add(prefs)

        prefs.phone_number = phone_number
        prefs.preferred_call_time = preferred_call_time
        prefs.timezone = timezone
        prefs.is_active = is_active

        await self._session.flush()
        await self._session.refresh(prefs)
        return prefs

    async def set_schedule_ref(self, user_id: str, schedule_ref: str | None) -> bool:
        """Persist the recurring trigger handle for a user.

        Returns:
            True if the user exists, False otherwise.
        """
        stmt = (
            update(UserPreferences)
            .where(UserPreferences.user_id == user_id)
            .values(schedule_ref=schedule_ref)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0
