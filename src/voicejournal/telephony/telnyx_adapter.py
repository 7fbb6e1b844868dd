"""
Telnyx telephony provider adapter.

Callbacks are JSON (``{"data": {"event_type": ..., "payload": {...}}}``) and
signed with Ed25519: ``telnyx-signature-ed25519`` is the base64 signature of
``"{telnyx-timestamp}|{raw body}"`` under the account's public key.
"""

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

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
from voicejournal.telephony.voice_responses import TEXML

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "telnyx-signature-ed25519"
TIMESTAMP_HEADER = "telnyx-timestamp"
API_BASE_URL = "https://api.telnyx.com/v2"

# Event types take precedence over the coarse call state.
TELNYX_EVENT_MAP: dict[str, ProgressSignal] = {
    "call.initiated": ProgressSignal.INITIATED,
    "call.ringing": ProgressSignal.RINGING,
    "call.answered": ProgressSignal.ANSWERED,
    "call.hangup": ProgressSignal.HANGUP,
}

TELNYX_STATE_MAP: dict[str, CallStatus] = {
    "parked": CallStatus.INITIATED,
    "bridging": CallStatus.RINGING,
    "active": CallStatus.IN_PROGRESS,
    "hangup": CallStatus.COMPLETED,
}

SETUP_EVENTS = frozenset({"call.initiated", "call.answered"})
RECORDING_SAVED_EVENT = "call.recording.saved"
TRANSCRIPTION_EVENT = "call.transcription"


def _parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _decode_client_state(value: Any) -> str | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return base64.b64decode(value, validate=True).decode("utf-8") or None
    except (binascii.Error, UnicodeDecodeError):
        logger.warning("Undecodable Telnyx client_state")
        return None


class TelnyxAdapter(WebhookAdapter, OutboundCallProvider):
    """Telnyx webhook adapter and outbound call provider (Call Control v2 API)."""

    name = "telnyx"
    dialect = TEXML

    def __init__(
        self,
        config: TelephonyConfig,
        http_client: httpx.Client | None = None,
        skip_verification: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._skip_verification = skip_verification
        self._clock = clock

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

    # ------------------------------------------------------------------
    # Inbound callbacks
    # ------------------------------------------------------------------

    def verify(self, webhook: InboundWebhook) -> None:
        if self._skip_verification:
            logger.warning("Skipping Telnyx signature verification (development)")
            return

        signature = webhook.header(SIGNATURE_HEADER)
        timestamp = webhook.header(TIMESTAMP_HEADER)
        if not signature or not timestamp:
            raise AuthenticationError(message="Missing Telnyx signature headers")
        if not self._config.telnyx_public_key:
            raise AuthenticationError(message="Telnyx public key not configured")

        try:
            sent_at = int(timestamp)
        except ValueError as e:
            raise AuthenticationError(message="Invalid Telnyx timestamp") from e

        tolerance = self._config.signature_tolerance_seconds
        if tolerance and abs(self._clock() - sent_at) > tolerance:
            raise AuthenticationError(message="Telnyx signature timestamp outside tolerance")

        try:
            public_key = Ed25519PublicKey.from_public_bytes(
                base64.b64decode(self._config.telnyx_public_key)
            )
            public_key.verify(
                base64.b64decode(signature),
                timestamp.encode("utf-8") + b"|" + webhook.body,
            )
        except (InvalidSignature, binascii.Error, ValueError) as e:
            logger.warning("Invalid Telnyx signature", extra={"url": webhook.url})
            raise AuthenticationError(message="Invalid Telnyx signature") from e

    def normalize(
        self,
        channel: WebhookChannel,
        webhook: InboundWebhook,
    ) -> NormalizedEvent | None:
        event_type, payload = self._parse(webhook.body)

        match channel:
            case WebhookChannel.VOICE | WebhookChannel.STATUS:
                if event_type not in TELNYX_EVENT_MAP and channel == WebhookChannel.VOICE:
                    return None
                return self._progress_event(
                    event_type,
                    payload,
                    webhook.query,
                    is_setup=channel == WebhookChannel.VOICE and event_type in SETUP_EVENTS,
                )
            case WebhookChannel.RECORDING:
                if event_type != RECORDING_SAVED_EVENT:
                    return None
                urls = payload.get("recording_urls") or {}
                duration_ms = payload.get("duration_millis")
                return RecordingEvent(
                    provider=self.name,
                    call_id=self._call_id(payload),
                    recording_ref=urls.get("mp3") if isinstance(urls, dict) else None,
                    recording_id=payload.get("recording_id"),
                    duration_ms=int(duration_ms) if isinstance(duration_ms, (int, float)) else None,
                )
            case WebhookChannel.TRANSCRIPTION:
                if event_type != TRANSCRIPTION_EVENT:
                    return None
                return TranscriptionEvent(
                    provider=self.name,
                    call_id=self._call_id(payload),
                    text=payload.get("transcription_text"),
                    status=payload.get("status"),
                    recording_id=payload.get("recording_id"),
                )
        return None

    def _parse(self, body: bytes) -> tuple[str, dict[str, Any]]:
        try:
            document = json.loads(body)
            data = document["data"]
            event_type = data["event_type"]
            payload = data.get("payload") or {}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise WebhookParseError(
                message="Malformed Telnyx webhook body",
                error_code="MALFORMED_BODY",
            ) from e
        if not isinstance(event_type, str) or not isinstance(payload, dict):
            raise WebhookParseError(
                message="Malformed Telnyx webhook body",
                error_code="MALFORMED_BODY",
            )
        return event_type, payload

    def _call_id(self, payload: dict[str, Any]) -> str:
        call_control_id = payload.get("call_control_id")
        if not call_control_id:
            raise WebhookParseError(
                message="Missing call_control_id in webhook payload",
                error_code="MISSING_CALL_CONTROL_ID",
                provider_response=payload,
            )
        return str(call_control_id)

    def _progress_event(
        self,
        event_type: str,
        payload: dict[str, Any],
        query: Mapping[str, str],
        is_setup: bool,
    ) -> ProgressEvent:
        direction_hint = query.get("direction") or (
            "outbound" if payload.get("direction") == "outgoing" else "inbound"
        )
        is_outbound = direction_hint == "outbound"
        side_channel = None
        if is_outbound:
            side_channel = query.get("userId") or _decode_client_state(payload.get("client_state"))

        state = payload.get("state")
        return ProgressEvent(
            provider=self.name,
            call_id=self._call_id(payload),
            signal=TELNYX_EVENT_MAP.get(event_type),
            provider_state=state if isinstance(state, str) else None,
            state_status=TELNYX_STATE_MAP.get(state) if isinstance(state, str) else None,
            is_setup=is_setup,
            direction=CallDirection.OUTBOUND if is_outbound else CallDirection.INBOUND,
            from_number=payload.get("from"),
            to_number=payload.get("to"),
            side_channel_user_id=side_channel,
            started_at=_parse_timestamp(payload.get("start_time")),
            ended_at=_parse_timestamp(payload.get("end_time")),
        )

    # ------------------------------------------------------------------
    # Outbound calls
    # ------------------------------------------------------------------

    def place_call_sync(self, request: PlaceCallRequest) -> PlacedCall:
        """Place an outbound call via the Telnyx Call Control API (sync)."""
        client = self._get_client()

        webhook_url = self._config.get_webhook_url("/webhooks/telnyx/voice") + "?" + urlencode(
            {"direction": "outbound", "userId": request.user_id}
        )
        payload = {
            "connection_id": self._config.telnyx_connection_id,
            "to": request.to,
            "from": request.from_number,
            "webhook_url": webhook_url,
            "webhook_url_method": "POST",
            "client_state": base64.b64encode(request.user_id.encode("utf-8")).decode("ascii"),
            "answering_machine_detection": "detect",
        }

        logger.info(
            "Placing Telnyx call",
            extra={"to": request.to, "user_id": request.user_id},
        )

        try:
            response = client.post(
                f"{API_BASE_URL}/calls",
                json=payload,
                headers={"Authorization": f"Bearer {self._config.telnyx_api_key}"},
            )
        except httpx.HTTPError as e:
            logger.exception(
                "HTTP error during Telnyx call placement",
                extra={"user_id": request.user_id},
            )
            raise CallPlacementError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

        if response.status_code >= 400:
            error_data = response.json() if response.content else {}
            errors = error_data.get("errors") or [{}]
            logger.error(
                "Telnyx call placement failed",
                extra={
                    "status_code": response.status_code,
                    "error": error_data,
                    "user_id": request.user_id,
                },
            )
            raise CallPlacementError(
                message=errors[0].get("detail") or errors[0].get("title") or "Call placement failed",
                error_code=str(errors[0].get("code", response.status_code)),
                provider_response=error_data,
            )

        data = response.json().get("data") or {}
        call_control_id = data.get("call_control_id")
        if not call_control_id:
            raise CallPlacementError(
                message="No call_control_id returned from Telnyx",
                error_code="MISSING_CALL_CONTROL_ID",
                provider_response=data,
            )
        return PlacedCall(
            provider_call_id=call_control_id,
            created_at=datetime.now(timezone.utc),
            raw_response=data,
        )
