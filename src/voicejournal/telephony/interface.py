"""
Telephony provider interfaces.

Every provider implements two capabilities:
- WebhookAdapter: verify an inbound callback, then normalize it
- OutboundCallProvider: place an outbound call through the provider REST API
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import anyio

from voicejournal.telephony.events import NormalizedEvent, WebhookChannel
from voicejournal.telephony.voice_responses import VoiceDialect


@dataclass(frozen=True)
class InboundWebhook:
    """Raw inbound callback as received, before any parsing.

    ``url`` is the public URL the provider posted to (what it signed);
    ``headers`` keys are lower-case.
    """

    url: str
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


@dataclass(frozen=True)
class PlaceCallRequest:
    """Request to place an outbound journal call."""

    to: str
    from_number: str
    user_id: str


@dataclass(frozen=True)
class PlacedCall:
    """Provider acknowledgement of a placed call."""

    provider_call_id: str
    created_at: datetime
    raw_response: dict[str, Any] = field(default_factory=dict)


class TelephonyProviderError(Exception):
    """Base exception for telephony provider errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class CallPlacementError(TelephonyProviderError):
    """Error placing an outbound call."""


class WebhookParseError(TelephonyProviderError):
    """Error parsing a webhook payload."""


class WebhookAdapter(ABC):
    """Provider-specific boundary for inbound callbacks."""

    name: str
    dialect: VoiceDialect

    @abstractmethod
    def verify(self, webhook: InboundWebhook) -> None:
        """Check the callback signature over the raw body.

        Raises:
            AuthenticationError: If the signature is missing or invalid.
        """
        ...

    @abstractmethod
    def normalize(
        self,
        channel: WebhookChannel,
        webhook: InboundWebhook,
    ) -> NormalizedEvent | None:
        """Map a verified callback to a normalized event.

        Returns:
            The event, or None for callbacks the service does not act on.

        Raises:
            WebhookParseError: If the payload is malformed.
        """
        ...


class OutboundCallProvider(ABC):
    """Places outbound calls.

    The async entrypoint delegates to the sync implementation in a worker
    thread, so adapters can use a plain ``httpx.Client``.
    """

    name: str

    async def place_call(self, request: PlaceCallRequest) -> PlacedCall:
        return await anyio.to_thread.run_sync(self.place_call_sync, request)

    @abstractmethod
    def place_call_sync(self, request: PlaceCallRequest) -> PlacedCall:
        """Place an outbound call (sync).

        Raises:
            CallPlacementError: If the provider rejects the call.
        """
        ...

    def close(self) -> None:
        """Release HTTP resources."""
