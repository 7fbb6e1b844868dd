"""
Maps a call-setup event to the user who owns the call.

Inbound calls resolve by exact caller phone number; outbound calls carry
the initiating user id through the provider side channel.
"""

from dataclasses import dataclass

from voicejournal.calls.models import CallDirection
from voicejournal.shared.logging import get_logger
from voicejournal.telephony.events import ProgressEvent
from voicejournal.users.repository import UserPreferencesRepositoryProtocol

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    user_id: str
    direction: CallDirection


class CallerResolver:
    """Resolve the owning user of a new call."""

    def __init__(self, users: UserPreferencesRepositoryProtocol) -> None:
        self._users = users

    async def resolve(self, event: ProgressEvent) -> Resolution | None:
        """Return the owning user, or None when the caller is unrecognized."""
        if event.direction == CallDirection.OUTBOUND:
            if not event.side_channel_user_id:
                logger.warning(
                    "Outbound call without side-channel user id",
                    extra={"provider": event.provider, "call_id": event.call_id},
                )
                return None
            return Resolution(user_id=event.side_channel_user_id, direction=CallDirection.OUTBOUND)

        if not event.from_number:
            return None
        prefs = await self._users.get_by_phone_number(event.from_number)
        if prefs is None:
            logger.info(
                "Unrecognized caller",
                extra={"provider": event.provider, "call_id": event.call_id},
            )
            return None
        return Resolution(user_id=prefs.user_id, direction=CallDirection.INBOUND)
