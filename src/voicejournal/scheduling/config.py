"""
Recurring trigger service configuration (AWS EventBridge Scheduler).
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerConfig(BaseSettings):
    """Scheduler configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    aws_region: str = Field(default="us-east-1")
    schedule_group: str = Field(default="voice-journal-user-calls")

    # Outbound dispatcher target invoked when a schedule fires
    target_arn: str = Field(default="")
    role_arn: str = Field(default="")
