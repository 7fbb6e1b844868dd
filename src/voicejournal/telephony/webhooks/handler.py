"""
Call lifecycle state machine.

Consumes normalized events and reconciles them into the call record store.
Delivery is at-least-once and unordered: every transition is either an
insert-if-absent or a conditional update, so re-applying an event is safe.
Ordering is recovered only by the terminal-status guard; a stale
non-terminal event arriving after another non-terminal one is applied as-is.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from voicejournal.calls.models import CallStatus
from voicejournal.calls.repository import CallRecordRepositoryProtocol
from voicejournal.calls.resolver import CallerResolver
from voicejournal.journal.repository import JournalEntryRepository
from voicejournal.shared.exceptions import NotFoundError
from voicejournal.shared.logging import get_logger
from voicejournal.telephony.events import (
    NormalizedEvent,
    ProgressEvent,
    ProgressSignal,
    RecordingEvent,
    TranscriptionEvent,
)

logger = get_logger(__name__)

SIGNAL_STATUS_MAP: dict[ProgressSignal, CallStatus] = {
    ProgressSignal.INITIATED: CallStatus.INITIATED,
    ProgressSignal.RINGING: CallStatus.RINGING,
    ProgressSignal.ANSWERED: CallStatus.IN_PROGRESS,
    ProgressSignal.HANGUP: CallStatus.COMPLETED,
}


def candidate_status(event: ProgressEvent) -> CallStatus:
    """Event-type signal first, then provider state, else ``failed``."""
    if event.signal is not None:
        return SIGNAL_STATUS_MAP[event.signal]
    if event.state_status is not None:
        return event.state_status
    return CallStatus.FAILED


def event_duration(event: ProgressEvent) -> int | None:
    """Call duration in seconds carried by a progress event, if any."""
    if event.signal == ProgressSignal.HANGUP and event.started_at and event.ended_at:
        seconds = (event.ended_at - event.started_at).total_seconds()
        return max(0, int(seconds + 0.5))
    if event.duration_seconds is not None and event.duration_seconds >= 0:
        return event.duration_seconds
    return None


class Outcome(str, Enum):
    APPLIED = "success"
    SKIPPED = "skipped"
    UNKNOWN_CALLER = "unknown_caller"


@dataclass(frozen=True)
class HandleResult:
    outcome: Outcome
    call_status: CallStatus | None = None
    entry_id: str | None = None
    reason: str | None = None


class WebhookHandler:
    """Apply normalized telephony events to call records and journal entries."""

    def __init__(
        self,
        calls: CallRecordRepositoryProtocol,
        journal: JournalEntryRepository,
        resolver: CallerResolver,
    ) -> None:
        """Initialize webhook handler.

        Args:
            calls: Call record store.
            journal: Journal entry store.
            resolver: Maps call-setup events to their owning user.
        """
        self._calls = calls
        self._journal = journal
        self._resolver = resolver

    async def handle(self, event: NormalizedEvent) -> HandleResult:
        """Handle one normalized event.

        Raises:
            NotFoundError: A completed transcription arrived for an unknown call.
        """
        match event:
            case ProgressEvent():
                return await self._handle_progress(event)
            case RecordingEvent():
                return await self._handle_recording(event)
            case TranscriptionEvent():
                return await self._handle_transcription(event)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    async def _handle_progress(self, event: ProgressEvent) -> HandleResult:
        status = candidate_status(event)
        log_extra = {
            "provider": event.provider,
            "call_id": event.call_id,
            "provider_state": event.provider_state,
            "signal": event.signal.value if event.signal else None,
            "candidate_status": status.value,
        }

        record = await self._calls.get(event.call_id)
        if record is None:
            if not event.is_setup:
                logger.info("No existing call record for status update", extra=log_extra)
                return HandleResult(Outcome.SKIPPED, reason="no_record")

            resolution = await self._resolver.resolve(event)
            if resolution is None:
                return HandleResult(Outcome.UNKNOWN_CALLER, reason="unknown_caller")

            record, created = await self._calls.create_if_absent(
                call_id=event.call_id,
                provider=event.provider,
                user_id=resolution.user_id,
                direction=resolution.direction,
                status=status,
                from_number=event.from_number,
                to_number=event.to_number,
            )
            if created:
                logger.info(
                    "Call record created",
                    extra={**log_extra, "user_id": resolution.user_id, "direction": resolution.direction.value},
                )
                return HandleResult(Outcome.APPLIED, call_status=status)
            # Lost a creation race with a concurrent delivery; fall through to update.

        fields: dict[str, Any] = {"status": status}
        duration = event_duration(event)
        if duration is not None:
            fields["duration"] = duration

        if not await self._calls.apply_if_not_terminal(event.call_id, fields):
            logger.info(
                "Call already terminal; progress event ignored",
                extra={**log_extra, "current_status": record.status.value},
            )
            return HandleResult(Outcome.SKIPPED, call_status=record.status, reason="terminal")

        logger.info("Updated call status", extra={**log_extra, "duration": duration})
        return HandleResult(Outcome.APPLIED, call_status=status)

    async def _handle_recording(self, event: RecordingEvent) -> HandleResult:
        log_extra = {
            "provider": event.provider,
            "call_id": event.call_id,
            "recording_id": event.recording_id,
        }

        record = await self._calls.get(event.call_id)
        if record is None:
            logger.warning("Call record not found for recording", extra=log_extra)
            return HandleResult(Outcome.SKIPPED, reason="no_record")

        fields: dict[str, Any] = {"recording_ref": event.recording_ref}
        if event.recording_id is not None:
            fields["recording_id"] = event.recording_id
        if event.duration_ms is not None:
            fields["duration"] = max(0, (event.duration_ms + 500) // 1000)
        await self._calls.update_fields(event.call_id, fields)

        if await self._calls.apply_if_not_terminal(event.call_id, {"status": CallStatus.COMPLETED}):
            status = CallStatus.COMPLETED
        else:
            status = record.status

        logger.info(
            "Updated call record with recording info",
            extra={**log_extra, "duration": fields.get("duration"), "call_status": status.value},
        )
        return HandleResult(Outcome.APPLIED, call_status=status)

    async def _handle_transcription(self, event: TranscriptionEvent) -> HandleResult:
        log_extra = {
            "provider": event.provider,
            "call_id": event.call_id,
            "transcription_status": event.status,
            "transcription_length": len(event.text or ""),
        }

        if not event.is_completed:
            logger.info("Skipping transcription", extra=log_extra)
            return HandleResult(Outcome.SKIPPED, reason="not_completed")

        record = await self._calls.get(event.call_id)
        if record is None:
            logger.warning("Call record not found for transcription", extra=log_extra)
            raise NotFoundError(
                message="Call record not found",
                details={"call_id": event.call_id},
            )

        text = event.text or ""
        await self._calls.update_fields(event.call_id, {"transcription_text": text})
        entry, created = await self._journal.create_if_absent(
            user_id=record.user_id,
            call_id=event.call_id,
            transcription=text,
            duration=record.duration,
        )

        logger.info(
            "Created journal entry" if created else "Journal entry already exists",
            extra={**log_extra, "entry_id": entry.entry_id, "user_id": record.user_id},
        )
        return HandleResult(Outcome.APPLIED, call_status=record.status, entry_id=entry.entry_id)
