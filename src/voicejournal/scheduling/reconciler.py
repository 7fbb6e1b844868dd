"""
Schedule reconciler.

Keeps exactly one recurring trigger per active user in line with their
current preferences and mirrors its handle onto ``UserPreferences.schedule_ref``.
Every operation is idempotent:

- Create on a user who already has a trigger updates it instead
- Update on a user with no trigger creates one
- Delete on a user with no trigger is a no-op

Trigger-service failures propagate as UpstreamError; the caller decides how
to leave the preference record consistent.
"""

from dataclasses import dataclass
from enum import Enum

from voicejournal.scheduling.cron import schedule_name, to_cron_expression
from voicejournal.scheduling.triggers import TriggerService, TriggerSpec
from voicejournal.shared.exceptions import NotFoundError, ValidationError
from voicejournal.shared.logging import get_logger
from voicejournal.users.repository import UserPreferencesRepositoryProtocol

logger = get_logger(__name__)


class ScheduleAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ScheduleRequest:
    """Schedule management invocation."""

    action: ScheduleAction
    user_id: str
    phone_number: str | None = None
    preferred_call_time: str | None = None
    timezone: str | None = None


@dataclass(frozen=True)
class ScheduleResult:
    success: bool
    schedule_ref: str | None = None


class ScheduleReconciler:
    """Create, update or delete a user's recurring call trigger."""

    def __init__(
        self,
        triggers: TriggerService,
        users: UserPreferencesRepositoryProtocol,
    ) -> None:
        self._triggers = triggers
        self._users = users

    async def apply(self, request: ScheduleRequest) -> ScheduleResult:
        """Dispatch a schedule management invocation."""
        if not request.user_id:
            raise ValidationError(message="userId is required")

        match request.action:
            case ScheduleAction.CREATE:
                ref = await self.create(
                    request.user_id, request.phone_number, request.preferred_call_time, request.timezone
                )
                return ScheduleResult(success=True, schedule_ref=ref)
            case ScheduleAction.UPDATE:
                ref = await self.update(
                    request.user_id, request.phone_number, request.preferred_call_time, request.timezone
                )
                return ScheduleResult(success=True, schedule_ref=ref)
            case ScheduleAction.DELETE:
                await self.delete(request.user_id)
                return ScheduleResult(success=True)
        raise ValidationError(message=f"Unknown action: {request.action}")

    async def create(
        self,
        user_id: str,
        phone_number: str | None,
        preferred_call_time: str | None,
        timezone: str | None,
    ) -> str:
        """Create the user's trigger, or update it if one already exists."""
        spec = self._build_spec(user_id, phone_number, preferred_call_time, timezone)
        await self._require_user(user_id)
        if await self._triggers.exists(spec.name):
            logger.info("Schedule already exists; updating", extra={"user_id": user_id})
            ref = await self._triggers.update(spec)
        else:
            ref = await self._triggers.create(spec)
        await self._users.set_schedule_ref(user_id, ref)
        logger.info("Schedule created", extra={"user_id": user_id, "schedule_ref": ref})
        return ref

    async def update(
        self,
        user_id: str,
        phone_number: str | None,
        preferred_call_time: str | None,
        timezone: str | None,
    ) -> str:
        """Update the user's trigger, creating it if it is missing."""
        spec = self._build_spec(user_id, phone_number, preferred_call_time, timezone)
        await self._require_user(user_id)
        if await self._triggers.exists(spec.name):
            ref = await self._triggers.update(spec)
        else:
            logger.info("Schedule missing; creating", extra={"user_id": user_id})
            ref = await self._triggers.create(spec)
        await self._users.set_schedule_ref(user_id, ref)
        logger.info("Schedule updated", extra={"user_id": user_id, "schedule_ref": ref})
        return ref

    async def delete(self, user_id: str) -> None:
        """Delete the user's trigger (if any) and clear ``schedule_ref``."""
        name = schedule_name(user_id)
        deleted = await self._triggers.delete(name)
        await self._users.set_schedule_ref(user_id, None)
        logger.info("Schedule deleted", extra={"user_id": user_id, "existed": deleted})

    async def _require_user(self, user_id: str) -> None:
        # the trigger handle needs a record to live on
        if await self._users.get(user_id) is None:
            raise NotFoundError(message=f"User not found: {user_id}", details={"userId": user_id})

    def _build_spec(
        self,
        user_id: str,
        phone_number: str | None,
        preferred_call_time: str | None,
        timezone: str | None,
    ) -> TriggerSpec:
        missing = [
            name
            for name, value in (
                ("phoneNumber", phone_number),
                ("preferredCallTime", preferred_call_time),
                ("timezone", timezone),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                message="Missing required fields for schedule",
                details={"missing": missing},
            )

        return TriggerSpec(
            name=schedule_name(user_id),
            expression=to_cron_expression(preferred_call_time or "", timezone or ""),
            payload={"userId": user_id, "phoneNumber": phone_number},
            description=f"Daily journal call for user {user_id}",
        )
