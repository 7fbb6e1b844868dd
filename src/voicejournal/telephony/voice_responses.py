"""
Voice-control documents returned to the provider on voice callbacks.

Twilio expects TwiML and Telnyx expects TeXML; both share the same
<Response>/<Say>/<Record>/<Hangup> vocabulary and differ only in voice names.
"""

from dataclasses import dataclass

MAX_RECORDING_SECONDS = 300
FINISH_ON_ANY_KEY = "1234567890*#"

GREETING = "Welcome to Voice Journal."
OUTBOUND_PROMPT = "It's time for your daily journal entry."
RECORD_PROMPT = (
    "Please share what's on your mind after the beep. "
    "Press any key when you're finished, or I'll stop recording after 5 minutes."
)
NO_RECORDING = "I didn't receive a recording. Please try again later. Goodbye."
RECORDING_SAVED = "Thank you for sharing. Your journal entry has been saved. Have a wonderful day!"
UNKNOWN_CALLER = (
    "Welcome to Voice Journal. We don't recognize this phone number. "
    "Please sign up at our website and add your phone number to your profile. Goodbye."
)
GENERIC_ERROR = "Sorry, we encountered an error. Please try again later."

XML_MEDIA_TYPE = "application/xml"


@dataclass(frozen=True)
class VoiceDialect:
    """Provider flavour of the voice-control markup."""

    name: str
    voice: str


TWIML = VoiceDialect(name="twiml", voice="Polly.Joanna")
TEXML = VoiceDialect(name="texml", voice="female")


def _document(body: str) -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>\n<Response>\n' + body + "\n</Response>"


def _xml_escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def _say(dialect: VoiceDialect, text: str) -> str:
    return f'  <Say voice="{dialect.voice}">{_xml_escape(text)}</Say>'


def journal_prompt(
    dialect: VoiceDialect,
    *,
    is_outbound: bool,
    recording_url: str,
    transcription_url: str,
) -> str:
    """Greet the caller and record the journal entry with transcription."""
    lines = [_say(dialect, GREETING)]
    if is_outbound:
        lines.append(_say(dialect, OUTBOUND_PROMPT))
    lines.append(_say(dialect, RECORD_PROMPT))
    lines.append(
        f'  <Record action="{_xml_escape(recording_url)}" method="POST"'
        f' maxLength="{MAX_RECORDING_SECONDS}" playBeep="true"'
        f' finishOnKey="{_xml_escape(FINISH_ON_ANY_KEY)}" transcribe="true"'
        f' transcribeCallback="{_xml_escape(transcription_url)}" />'
    )
    # Reached only when the caller hangs up or stays silent
    lines.append(_say(dialect, NO_RECORDING))
    return _document("\n".join(lines))


def recording_complete(dialect: VoiceDialect) -> str:
    return _document(_say(dialect, RECORDING_SAVED) + "\n  <Hangup />")


def unknown_caller(dialect: VoiceDialect) -> str:
    return _document(_say(dialect, UNKNOWN_CALLER) + "\n  <Hangup />")


def error(dialect: VoiceDialect) -> str:
    """Polite closing used whenever a voice callback fails internally."""
    return _document(_say(dialect, GENERIC_ERROR) + "\n  <Hangup />")
