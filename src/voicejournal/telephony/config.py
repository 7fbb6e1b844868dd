"""
Telephony provider configuration.

Credentials for both supported providers live here; ``provider_type``
selects which one places outbound calls. Inbound webhooks are accepted from
either provider on its own route.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony provider types."""

    TWILIO = "twilio"
    TELNYX = "telnyx"


class TelephonyConfig(BaseSettings):
    """Telephony provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection (outbound calls)
    provider_type: ProviderType = Field(default=ProviderType.TELNYX)

    # Twilio credentials
    twilio_account_sid: str = Field(default="")
    twilio_auth_token: str = Field(default="")
    twilio_from_number: str = Field(default="")

    # Telnyx credentials
    telnyx_api_key: str = Field(default="")
    telnyx_public_key: str = Field(
        default="",
        description="Base64 Ed25519 public key used to verify webhook signatures.",
    )
    telnyx_connection_id: str = Field(default="")
    telnyx_from_number: str = Field(default="")

    # Public base URL the providers call back into
    webhook_base_url: str = Field(default="http://localhost:8000")

    # Signature verification
    skip_signature_verification: bool = Field(
        default=False,
        description="Local development only; ignored unless APP_ENV=dev.",
    )
    signature_tolerance_seconds: int = Field(default=300, ge=0)

    # Timeouts
    call_timeout_seconds: int = Field(default=30, ge=1, le=300)

    def get_webhook_url(self, path: str) -> str:
        base = self.webhook_base_url.rstrip("/")
        return f"{base}{path}"

    @property
    def from_number(self) -> str:
        """Caller id for outbound calls on the selected provider."""
        if self.provider_type == ProviderType.TWILIO:
            return self.twilio_from_number
        return self.telnyx_from_number
