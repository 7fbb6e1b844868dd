"""
FastAPI dependencies exposing the objects built once in ``create_app``.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, Request

from voicejournal.config import Settings
from voicejournal.scheduling.triggers import TriggerService
from voicejournal.shared.exceptions import AuthenticationError
from voicejournal.telephony.config import ProviderType, TelephonyConfig
from voicejournal.telephony.interface import OutboundCallProvider, WebhookAdapter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_telephony_config(request: Request) -> TelephonyConfig:
    return request.app.state.telephony_config


def get_webhook_adapters(request: Request) -> dict[ProviderType, WebhookAdapter]:
    return request.app.state.telephony_providers


def get_outbound_provider(request: Request) -> OutboundCallProvider:
    cfg: TelephonyConfig = request.app.state.telephony_config
    return request.app.state.telephony_providers[cfg.provider_type]


def get_trigger_service(request: Request) -> TriggerService:
    return request.app.state.trigger_service


async def require_internal_token(
    settings: Annotated[Settings, Depends(get_settings)],
    x_internal_token: Annotated[str | None, Header(alias="X-Internal-Token")] = None,
) -> None:
    """Guard for the internal invocation endpoints (disabled when no token is set)."""
    expected = settings.internal_api_token
    if not expected:
        return
    if not x_internal_token or not hmac.compare_digest(x_internal_token, expected):
        raise AuthenticationError(message="Invalid internal token")
