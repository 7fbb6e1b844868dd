"""
Outbound call dispatcher, invoked when a user's recurring trigger fires.

The trigger payload is a snapshot taken when the schedule was last saved, so
live preferences are re-read here: inactive or deleted users are skipped and
the current phone number wins over the one in the payload.
"""

from dataclasses import dataclass

from voicejournal.calls.models import CallDirection, CallStatus
from voicejournal.calls.repository import CallRecordRepositoryProtocol
from voicejournal.shared.logging import get_logger
from voicejournal.telephony.interface import OutboundCallProvider, PlaceCallRequest
from voicejournal.users.repository import UserPreferencesRepositoryProtocol

logger = get_logger(__name__)


@dataclass(frozen=True)
class DispatchRequest:
    """Trigger invocation payload."""

    user_id: str
    phone_number: str


@dataclass(frozen=True)
class DispatchResult:
    status: str
    call_id: str | None = None
    reason: str | None = None


class OutboundDispatcher:
    """Place the daily journal call for one user."""

    def __init__(
        self,
        users: UserPreferencesRepositoryProtocol,
        calls: CallRecordRepositoryProtocol,
        provider: OutboundCallProvider,
        from_number: str,
    ) -> None:
        self._users = users
        self._calls = calls
        self._provider = provider
        self._from_number = from_number

    async def dispatch(self, request: DispatchRequest) -> DispatchResult:
        """Re-validate against live preferences and place the call.

        Raises:
            CallPlacementError: If the provider rejects the call.
        """
        user_id = request.user_id
        logger.info("Processing outbound call", extra={"user_id": user_id})

        prefs = await self._users.get(user_id)
        if prefs is None:
            logger.info("User not found; skipping call", extra={"user_id": user_id})
            return DispatchResult(status="skipped", reason="user_not_found")
        if not prefs.is_active:
            logger.info("User is inactive; skipping call", extra={"user_id": user_id})
            return DispatchResult(status="skipped", reason="inactive")
        if not prefs.phone_number:
            logger.info("User has no phone number; skipping call", extra={"user_id": user_id})
            return DispatchResult(status="skipped", reason="no_phone_number")

        phone_number = prefs.phone_number
        if phone_number != request.phone_number:
            logger.info("Phone number changed since scheduling; using current", extra={"user_id": user_id})

        placed = await self._provider.place_call(
            PlaceCallRequest(to=phone_number, from_number=self._from_number, user_id=user_id)
        )

        await self._calls.create_if_absent(
            call_id=placed.provider_call_id,
            provider=self._provider.name,
            user_id=user_id,
            direction=CallDirection.OUTBOUND,
            status=CallStatus.INITIATED,
            from_number=self._from_number,
            to_number=phone_number,
        )
        logger.info(
            "Call initiated",
            extra={"user_id": user_id, "call_id": placed.provider_call_id},
        )
        return DispatchResult(status="dispatched", call_id=placed.provider_call_id)
