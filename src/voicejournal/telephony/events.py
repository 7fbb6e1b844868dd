"""
Normalized telephony events.

Provider adapters turn each webhook into exactly one of the event types
below (or nothing, for callbacks the service does not act on). The call
state machine only ever sees these types.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal, Union

from voicejournal.calls.models import CallDirection, CallStatus


class WebhookChannel(str, Enum):
    """Callback endpoints each provider posts to."""

    VOICE = "voice"
    STATUS = "status"
    RECORDING = "recording"
    TRANSCRIPTION = "transcription"


class ProgressSignal(str, Enum):
    """Explicit call-progress event types (more precise than provider states)."""

    INITIATED = "initiated"
    RINGING = "ringing"
    ANSWERED = "answered"
    HANGUP = "hangup"


@dataclass(frozen=True)
class ProgressEvent:
    """Call-progress callback.

    ``signal`` carries an explicit event type when the provider sends one;
    ``state_status`` is the provider's coarse state mapped into our
    vocabulary (None when the state was not recognized).
    """

    provider: str
    call_id: str
    signal: ProgressSignal | None = None
    provider_state: str | None = None
    state_status: CallStatus | None = None
    is_setup: bool = False
    direction: CallDirection = CallDirection.INBOUND
    from_number: str | None = None
    to_number: str | None = None
    side_channel_user_id: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    kind: Literal["progress"] = "progress"


@dataclass(frozen=True)
class RecordingEvent:
    """Recording-complete callback."""

    provider: str
    call_id: str
    recording_ref: str | None = None
    recording_id: str | None = None
    duration_ms: int | None = None
    kind: Literal["recording"] = "recording"


@dataclass(frozen=True)
class TranscriptionEvent:
    """Transcription-complete callback."""

    provider: str
    call_id: str
    text: str | None = None
    status: str | None = None
    recording_id: str | None = None
    kind: Literal["transcription"] = "transcription"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed" and bool((self.text or "").strip())


NormalizedEvent = Union[ProgressEvent, RecordingEvent, TranscriptionEvent]
