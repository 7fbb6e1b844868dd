"""
Repository for call record database operations.

The call record is the single source of truth for call state. Concurrent
webhooks for the same call coordinate only through the conditional update
in ``apply_if_not_terminal``; nothing here takes locks.
"""

from typing import Any, Protocol, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.calls.models import (
    TERMINAL_STATUSES,
    CallDirection,
    CallRecord,
    CallStatus,
)
from voicejournal.shared.database import insert_if_absent
from voicejournal.shared.pagination import PageKey, keyset_before


class CallRecordRepositoryProtocol(Protocol):
    """Protocol for call record store operations."""

    async def get(self, call_id: str) -> CallRecord | None:
        """Get a call record by provider call id."""
        ...

    async def create_if_absent(
        self,
        call_id: str,
        provider: str,
        user_id: str,
        direction: CallDirection,
        status: CallStatus,
        from_number: str | None = None,
        to_number: str | None = None,
    ) -> tuple[CallRecord, bool]:
        """Create a call record unless one already exists."""
        ...

    async def update_fields(self, call_id: str, fields: dict[str, Any]) -> bool:
        """Unconditionally update fields on an existing record."""
        ...

    async def apply_if_not_terminal(self, call_id: str, fields: dict[str, Any]) -> bool:
        """Update fields only while the record is not in a terminal status."""
        ...


class CallRecordRepository:
    """Repository for call record database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get(self, call_id: str) -> CallRecord | None:
        """Get a call record by provider call id.

        Args:
            call_id: Provider call identifier (CallSid / call_control_id).

        Returns:
            CallRecord if found, None otherwise.
        """
        stmt = (
            select(CallRecord)
            .where(CallRecord.call_id == call_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_if_absent(
        self,
        call_id: str,
        provider: str,
        user_id: str,
        direction: CallDirection,
        status: CallStatus,
        from_number: str | None = None,
        to_number: str | None = None,
    ) -> tuple[CallRecord, bool]:
        """Create a call record unless one already exists for ``call_id``.

        A record that already exists is returned untouched; user and direction
        are immutable after creation.

        Returns:
            Tuple of (record, created).
        """
        created = await insert_if_absent(
            self._session,
            CallRecord,
            {
                "call_id": call_id,
                "provider": provider,
                "user_id": user_id,
                "direction": direction,
                "status": status,
                "from_number": from_number,
                "to_number": to_number,
            },
            index_elements=["call_id"],
        )
        record = await self.get(call_id)
        if record is None:
            raise RuntimeError(f"Call record {call_id} vanished after insert")
        return record, created

    async def update_fields(self, call_id: str, fields: dict[str, Any]) -> bool:
        """Unconditionally update fields on an existing record.

        Returns:
            True if a record matched, False if none exists (no-op).
        """
        if not fields:
            return await self.get(call_id) is not None
        stmt = (
            update(CallRecord)
            .where(CallRecord.call_id == call_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def apply_if_not_terminal(self, call_id: str, fields: dict[str, Any]) -> bool:
        """Update fields only while the record is not in a terminal status.

        This is a single conditional UPDATE, so a terminal status written by
        a concurrent webhook is never overwritten.

        Returns:
            True if the update was applied, False if the record is absent or
            already terminal.
        """
        stmt = (
            update(CallRecord)
            .where(
                CallRecord.call_id == call_id,
                CallRecord.status.not_in(list(TERMINAL_STATUSES)),
            )
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_by_user(
        self,
        user_id: str,
        limit: int,
        after: PageKey | None = None,
    ) -> Sequence[CallRecord]:
        """List a user's calls newest first, starting after ``after``."""
        stmt = select(CallRecord).where(CallRecord.user_id == user_id)
        if after is not None:
            stmt = stmt.where(keyset_before(CallRecord.timestamp, CallRecord.call_id, after))
        stmt = stmt.order_by(CallRecord.timestamp.desc(), CallRecord.call_id.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

