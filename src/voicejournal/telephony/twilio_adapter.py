"""
Twilio telephony provider adapter.

Callbacks are form-encoded and signed with ``X-Twilio-Signature``: base64
HMAC-SHA1 of the full callback URL followed by every POST parameter
(sorted by name) concatenated as name+value.
"""

import hashlib
import hmac
import logging
from base64 import b64encode
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlencode

import httpx

from voicejournal.calls.models import CallDirection, CallStatus
from voicejournal.shared.exceptions import AuthenticationError
from voicejournal.telephony.config import TelephonyConfig
from voicejournal.telephony.events import (
    NormalizedEvent,
    ProgressEvent,
    ProgressSignal,
    RecordingEvent,
    TranscriptionEvent,
    WebhookChannel,
)
from voicejournal.telephony.interface import (
    CallPlacementError,
    InboundWebhook,
    OutboundCallProvider,
    PlaceCallRequest,
    PlacedCall,
    WebhookAdapter,
    WebhookParseError,
)
from voicejournal.telephony.voice_responses import TWIML

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"

TWILIO_STATUS_MAP: dict[str, CallStatus] = {
    "queued": CallStatus.INITIATED,
    "initiated": CallStatus.INITIATED,
    "ringing": CallStatus.RINGING,
    "in-progress": CallStatus.IN_PROGRESS,
    "completed": CallStatus.COMPLETED,
    "busy": CallStatus.BUSY,
    "no-answer": CallStatus.NO_ANSWER,
    "canceled": CallStatus.FAILED,
    "failed": CallStatus.FAILED,
}


def compute_twilio_signature(auth_token: str, url: str, params: Mapping[str, list[str]]) -> str:
    """Compute the expected ``X-Twilio-Signature`` for a callback."""
    data = url
    for name in sorted(params):
        for value in sorted(set(params[name])):
            data += name + value
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return b64encode(digest).decode("utf-8")


def _parse_form(body: bytes) -> dict[str, list[str]]:
    try:
        return parse_qs(body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError as e:
        raise WebhookParseError(
            message="Twilio callback body is not valid UTF-8",
            error_code="INVALID_ENCODING",
        ) from e


def _to_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class TwilioAdapter(WebhookAdapter, OutboundCallProvider):
    """Twilio webhook adapter and outbound call provider.

    Uses httpx for REST calls.
    """

    name = "twilio"
    dialect = TWIML

    def __init__(
        self,
        config: TelephonyConfig,
        http_client: httpx.Client | None = None,
        skip_verification: bool = False,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._skip_verification = skip_verification

    def _get_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(
                timeout=httpx.Timeout(float(self._config.call_timeout_seconds))
            )
        return self._http_client

    def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def _get_auth(self) -> tuple[str, str]:
        return (self._config.twilio_account_sid, self._config.twilio_auth_token)

    def _get_api_url(self, endpoint: str) -> str:
        account_sid = self._config.twilio_account_sid
        return f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}{endpoint}"

    # ------------------------------------------------------------------
    # Inbound callbacks
    # ------------------------------------------------------------------

    def verify(self, webhook: InboundWebhook) -> None:
        if self._skip_verification:
            logger.warning("Skipping Twilio signature verification (development)")
            return

        signature = webhook.header(SIGNATURE_HEADER)
        if not signature:
            raise AuthenticationError(message="Missing Twilio signature")
        if not self._config.twilio_auth_token:
            raise AuthenticationError(message="Twilio auth token not configured")

        try:
            params = _parse_form(webhook.body)
        except WebhookParseError as e:
            logger.warning("Undecodable Twilio callback body", extra={"url": webhook.url})
            raise AuthenticationError(message="Invalid Twilio signature") from e

        expected = compute_twilio_signature(self._config.twilio_auth_token, webhook.url, params)
        if not hmac.compare_digest(expected, signature):
            logger.warning("Invalid Twilio signature", extra={"url": webhook.url})
            raise AuthenticationError(message="Invalid Twilio signature")

    def normalize(
        self,
        channel: WebhookChannel,
        webhook: InboundWebhook,
    ) -> NormalizedEvent | None:
        params = {k: v[0] for k, v in _parse_form(webhook.body).items() if v}

        call_sid = params.get("CallSid")
        if not call_sid:
            raise WebhookParseError(
                message="Missing CallSid in webhook payload",
                error_code="MISSING_CALL_SID",
                provider_response=params,
            )

        match channel:
            case WebhookChannel.VOICE:
                return self._voice_event(call_sid, params, webhook.query)
            case WebhookChannel.STATUS:
                return self._status_event(call_sid, params)
            case WebhookChannel.RECORDING:
                duration = _to_int(params.get("RecordingDuration"))
                return RecordingEvent(
                    provider=self.name,
                    call_id=call_sid,
                    recording_ref=params.get("RecordingUrl"),
                    recording_id=params.get("RecordingSid"),
                    duration_ms=duration * 1000 if duration is not None else None,
                )
            case WebhookChannel.TRANSCRIPTION:
                return TranscriptionEvent(
                    provider=self.name,
                    call_id=call_sid,
                    text=params.get("TranscriptionText"),
                    status=params.get("TranscriptionStatus"),
                    recording_id=params.get("RecordingSid"),
                )
        return None

    def _voice_event(
        self,
        call_sid: str,
        params: dict[str, str],
        query: Mapping[str, str],
    ) -> ProgressEvent:
        # Twilio fetches the voice URL once the call is connected to us.
        direction_hint = query.get("direction") or (
            "outbound" if params.get("Direction", "").lower() == "outbound-api" else "inbound"
        )
        raw_status = params.get("CallStatus", "").lower() or None
        return ProgressEvent(
            provider=self.name,
            call_id=call_sid,
            signal=ProgressSignal.ANSWERED,
            provider_state=raw_status,
            state_status=TWILIO_STATUS_MAP.get(raw_status or ""),
            is_setup=True,
            direction=CallDirection.OUTBOUND if direction_hint == "outbound" else CallDirection.INBOUND,
            from_number=params.get("From"),
            to_number=params.get("To"),
            side_channel_user_id=query.get("userId") or None,
        )

    def _status_event(self, call_sid: str, params: dict[str, str]) -> ProgressEvent:
        raw_status = params.get("CallStatus", "").lower()
        if not raw_status:
            raise WebhookParseError(
                message="Missing CallStatus in webhook payload",
                error_code="MISSING_CALL_STATUS",
                provider_response=params,
            )
        return ProgressEvent(
            provider=self.name,
            call_id=call_sid,
            provider_state=raw_status,
            state_status=TWILIO_STATUS_MAP.get(raw_status),
            from_number=params.get("From"),
            to_number=params.get("To"),
            duration_seconds=_to_int(params.get("CallDuration")),
        )

    # ------------------------------------------------------------------
    # Outbound calls
    # ------------------------------------------------------------------

    def place_call_sync(self, request: PlaceCallRequest) -> PlacedCall:
        """Place an outbound call via the Twilio REST API (sync)."""
        client = self._get_client()

        voice_url = self._config.get_webhook_url("/webhooks/twilio/voice") + "?" + urlencode(
            {"direction": "outbound", "userId": request.user_id}
        )
        payload: dict[str, Any] = {
            "To": request.to,
            "From": request.from_number,
            "Url": voice_url,
            "Method": "POST",
            "StatusCallback": self._config.get_webhook_url("/webhooks/twilio/status"),
            "StatusCallbackEvent": ["initiated", "ringing", "answered", "completed"],
            "StatusCallbackMethod": "POST",
        }

        logger.info(
            "Placing Twilio call",
            extra={"to": request.to, "user_id": request.user_id},
        )

        try:
            response = client.post(
                self._get_api_url("/Calls.json"),
                data=payload,
                auth=self._get_auth(),
            )
        except httpx.HTTPError as e:
            logger.exception(
                "HTTP error during Twilio call placement",
                extra={"user_id": request.user_id},
            )
            raise CallPlacementError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

        if response.status_code >= 400:
            error_data = response.json() if response.content else {}
            logger.error(
                "Twilio call placement failed",
                extra={
                    "status_code": response.status_code,
                    "error": error_data,
                    "user_id": request.user_id,
                },
            )
            raise CallPlacementError(
                message=error_data.get("message", "Call placement failed"),
                error_code=str(error_data.get("code", response.status_code)),
                provider_response=error_data,
            )

        data = response.json()
        return PlacedCall(
            provider_call_id=data["sid"],
            created_at=datetime.now(timezone.utc),
            raw_response=data,
        )
