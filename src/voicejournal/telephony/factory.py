"""
Telephony provider factory.

Providers are built once at application start from an explicit
TelephonyConfig and stored on ``app.state``; nothing here is cached at
module level.
"""

from __future__ import annotations

import logging

from voicejournal.telephony.config import ProviderType, TelephonyConfig
from voicejournal.telephony.telnyx_adapter import TelnyxAdapter
from voicejournal.telephony.twilio_adapter import TwilioAdapter

logger = logging.getLogger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


def signature_bypass_enabled(cfg: TelephonyConfig, app_env: str) -> bool:
    """The verification bypass is honoured only in the dev environment."""
    if cfg.skip_signature_verification and app_env != "dev":
        logger.warning(
            "Ignoring TELEPHONY_SKIP_SIGNATURE_VERIFICATION outside dev",
            extra={"app_env": app_env},
        )
        return False
    return cfg.skip_signature_verification


def build_telephony_providers(
    cfg: TelephonyConfig,
    app_env: str,
) -> dict[ProviderType, TwilioAdapter | TelnyxAdapter]:
    """Create one adapter per supported provider."""
    skip = signature_bypass_enabled(cfg, app_env)

    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "twilio_account_sid": _mask(cfg.twilio_account_sid),
            "telnyx_connection_id": _mask(cfg.telnyx_connection_id),
            "webhook_base_url": cfg.webhook_base_url,
            "skip_signature_verification": skip,
        },
    )

    return {
        ProviderType.TWILIO: TwilioAdapter(cfg, skip_verification=skip),
        ProviderType.TELNYX: TelnyxAdapter(cfg, skip_verification=skip),
    }
