"""Tests for the call lifecycle state machine (sqlite-backed)."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from factories import add_call, add_user
from voicejournal.calls.models import CallDirection, CallStatus
from voicejournal.calls.repository import CallRecordRepository
from voicejournal.calls.resolver import CallerResolver
from voicejournal.journal.repository import JournalEntryRepository
from voicejournal.shared.database import DatabaseManager
from voicejournal.shared.exceptions import NotFoundError
from voicejournal.telephony.events import (
    ProgressEvent,
    ProgressSignal,
    RecordingEvent,
    TranscriptionEvent,
)
from voicejournal.telephony.webhooks.handler import (
    Outcome,
    WebhookHandler,
    candidate_status,
    event_duration,
)
from voicejournal.users.repository import UserPreferencesRepository

USER_PHONE = "+15551230001"


@pytest.fixture
def handler(db_session: AsyncSession) -> WebhookHandler:
    return WebhookHandler(
        calls=CallRecordRepository(db_session),
        journal=JournalEntryRepository(db_session),
        resolver=CallerResolver(UserPreferencesRepository(db_session)),
    )


def _setup(call_id: str, **kwargs) -> ProgressEvent:
    defaults = dict(
        provider="twilio",
        call_id=call_id,
        signal=ProgressSignal.ANSWERED,
        is_setup=True,
        from_number=USER_PHONE,
        to_number="+14155550000",
    )
    defaults.update(kwargs)
    return ProgressEvent(**defaults)


def _status(call_id: str, state: CallStatus | None, **kwargs) -> ProgressEvent:
    return ProgressEvent(provider="twilio", call_id=call_id, state_status=state, **kwargs)


class TestCandidateStatus:
    def test_signal_wins_over_state(self) -> None:
        event = ProgressEvent(
            provider="telnyx",
            call_id="c",
            signal=ProgressSignal.HANGUP,
            state_status=CallStatus.IN_PROGRESS,
        )
        assert candidate_status(event) == CallStatus.COMPLETED

    def test_state_used_without_signal(self) -> None:
        assert candidate_status(_status("c", CallStatus.BUSY)) == CallStatus.BUSY

    def test_unrecognized_is_failed(self) -> None:
        assert candidate_status(_status("c", None)) == CallStatus.FAILED

    def test_hangup_duration_rounds_half_up(self) -> None:
        start = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        event = ProgressEvent(
            provider="telnyx",
            call_id="c",
            signal=ProgressSignal.HANGUP,
            started_at=start,
            ended_at=start + timedelta(seconds=42, milliseconds=500),
        )
        assert event_duration(event) == 43

    def test_reported_duration(self) -> None:
        assert event_duration(_status("c", CallStatus.COMPLETED, duration_seconds=12)) == 12
        assert event_duration(_status("c", CallStatus.COMPLETED)) is None


class TestProgress:
    @pytest.mark.asyncio
    async def test_inbound_setup_creates_record(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_user(db, "user-1", phone_number=USER_PHONE)

        result = await handler.handle(_setup("CA1"))

        assert result.outcome == Outcome.APPLIED
        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.user_id == "user-1"
        assert record.direction == CallDirection.INBOUND
        assert record.status == CallStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unknown_caller_creates_nothing(
        self, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        result = await handler.handle(_setup("CA1", from_number="+15550000000"))

        assert result.outcome == Outcome.UNKNOWN_CALLER
        assert await CallRecordRepository(db_session).get("CA1") is None

    @pytest.mark.asyncio
    async def test_outbound_setup_uses_side_channel(
        self, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        event = _setup(
            "CA2",
            direction=CallDirection.OUTBOUND,
            side_channel_user_id="user-9",
            from_number="+14155550000",
        )

        result = await handler.handle(event)

        assert result.outcome == Outcome.APPLIED
        record = await CallRecordRepository(db_session).get("CA2")
        assert record is not None
        assert record.user_id == "user-9"
        assert record.direction == CallDirection.OUTBOUND

    @pytest.mark.asyncio
    async def test_outbound_without_side_channel_is_unknown(self, handler: WebhookHandler) -> None:
        result = await handler.handle(_setup("CA2", direction=CallDirection.OUTBOUND))
        assert result.outcome == Outcome.UNKNOWN_CALLER

    @pytest.mark.asyncio
    async def test_duplicate_setup_keeps_single_record(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_user(db, "user-1", phone_number=USER_PHONE)

        first = await handler.handle(_setup("CA1"))
        second = await handler.handle(_setup("CA1"))

        assert first.outcome == Outcome.APPLIED
        assert second.outcome == Outcome.APPLIED
        rows = await CallRecordRepository(db_session).list_by_user("user-1", limit=10)
        assert [r.call_id for r in rows] == ["CA1"]

    @pytest.mark.asyncio
    async def test_status_without_record_is_skipped(
        self, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        result = await handler.handle(_status("CA404", CallStatus.RINGING))

        assert result.outcome == Outcome.SKIPPED
        assert result.reason == "no_record"
        assert await CallRecordRepository(db_session).get("CA404") is None

    @pytest.mark.asyncio
    async def test_status_updates_and_records_duration(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.IN_PROGRESS)

        result = await handler.handle(_status("CA1", CallStatus.COMPLETED, duration_seconds=42))

        assert result.outcome == Outcome.APPLIED
        assert result.call_status == CallStatus.COMPLETED
        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.status == CallStatus.COMPLETED
        assert record.duration == 42

    @pytest.mark.asyncio
    async def test_duplicate_terminal_event_is_idempotent(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.IN_PROGRESS)

        await handler.handle(_status("CA1", CallStatus.COMPLETED, duration_seconds=42))
        again = await handler.handle(_status("CA1", CallStatus.COMPLETED, duration_seconds=99))

        assert again.outcome == Outcome.SKIPPED
        assert again.reason == "terminal"
        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.status == CallStatus.COMPLETED
        assert record.duration == 42

    @pytest.mark.asyncio
    async def test_terminal_status_never_regresses(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.COMPLETED)

        result = await handler.handle(_status("CA1", CallStatus.RINGING))

        assert result.outcome == Outcome.SKIPPED
        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_late_setup_after_terminal_keeps_status(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_user(db, "user-1", phone_number=USER_PHONE)
        await add_call(db, "CA1", "user-1", status=CallStatus.NO_ANSWER)

        result = await handler.handle(_setup("CA1"))

        assert result.outcome == Outcome.SKIPPED
        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.status == CallStatus.NO_ANSWER


class TestRecording:
    @pytest.mark.asyncio
    async def test_recording_without_record_is_skipped(
        self, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        result = await handler.handle(
            RecordingEvent(provider="twilio", call_id="CA404", recording_ref="https://x/rec", duration_ms=1000)
        )

        assert result.outcome == Outcome.SKIPPED
        assert await CallRecordRepository(db_session).get("CA404") is None

    @pytest.mark.asyncio
    async def test_recording_completes_call(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.IN_PROGRESS)

        result = await handler.handle(
            RecordingEvent(
                provider="twilio",
                call_id="CA1",
                recording_ref="https://api.twilio.com/rec/RE1",
                recording_id="RE1",
                duration_ms=37_500,
            )
        )

        assert result.call_status == CallStatus.COMPLETED
        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.status == CallStatus.COMPLETED
        assert record.recording_ref == "https://api.twilio.com/rec/RE1"
        assert record.recording_id == "RE1"
        assert record.duration == 38

    @pytest.mark.asyncio
    async def test_recording_on_failed_call_keeps_status(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.FAILED)

        await handler.handle(
            RecordingEvent(provider="twilio", call_id="CA1", recording_ref="https://x/rec", duration_ms=2000)
        )

        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.status == CallStatus.FAILED
        assert record.recording_ref == "https://x/rec"


class TestTranscription:
    @pytest.mark.asyncio
    async def test_completed_transcription_creates_single_entry(
        self, db: DatabaseManager, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.COMPLETED, duration=42)
        event = TranscriptionEvent(
            provider="twilio",
            call_id="CA1",
            text="Today was good",
            status="completed",
        )

        first = await handler.handle(event)
        second = await handler.handle(event)

        assert first.outcome == Outcome.APPLIED
        assert first.entry_id is not None
        assert second.entry_id == first.entry_id

        entries = await JournalEntryRepository(db_session).list_by_user("user-1", limit=10)
        assert len(entries) == 1
        assert entries[0].transcription == "Today was good"
        assert entries[0].duration == 42
        assert entries[0].call_id == "CA1"

        record = await CallRecordRepository(db_session).get("CA1")
        assert record is not None
        assert record.transcription_text == "Today was good"

    @pytest.mark.parametrize(
        ("status", "text"),
        [("failed", "Today was good"), ("completed", ""), ("completed", "   "), (None, "hi")],
    )
    @pytest.mark.asyncio
    async def test_incomplete_transcription_is_skipped(
        self,
        db: DatabaseManager,
        db_session: AsyncSession,
        handler: WebhookHandler,
        status: str | None,
        text: str,
    ) -> None:
        await add_call(db, "CA1", "user-1", status=CallStatus.COMPLETED, duration=42)

        result = await handler.handle(
            TranscriptionEvent(provider="twilio", call_id="CA1", text=text, status=status)
        )

        assert result.outcome == Outcome.SKIPPED
        assert result.reason == "not_completed"
        assert await JournalEntryRepository(db_session).get_by_call_id("CA1") is None

    @pytest.mark.asyncio
    async def test_transcription_for_unknown_call(
        self, db_session: AsyncSession, handler: WebhookHandler
    ) -> None:
        with pytest.raises(NotFoundError):
            await handler.handle(
                TranscriptionEvent(provider="twilio", call_id="CA404", text="hello", status="completed")
            )
        assert await JournalEntryRepository(db_session).get_by_call_id("CA404") is None
