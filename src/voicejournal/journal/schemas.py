"""
Pydantic schemas for the journal and call history APIs.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from voicejournal.calls.models import CallDirection, CallStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class JournalEntryResponse(_CamelModel):
    entry_id: str
    user_id: str
    call_id: str
    transcription: str
    duration: int | None = None
    created_at: datetime


class JournalPageResponse(_CamelModel):
    entries: list[JournalEntryResponse]
    next_cursor: str | None = None


class CallRecordResponse(_CamelModel):
    call_id: str
    provider: str
    user_id: str
    direction: CallDirection
    status: CallStatus
    from_number: str | None = None
    to_number: str | None = None
    duration: int | None = None
    recording_ref: str | None = None
    timestamp: datetime


class CallPageResponse(_CamelModel):
    calls: list[CallRecordResponse]
    next_cursor: str | None = None
