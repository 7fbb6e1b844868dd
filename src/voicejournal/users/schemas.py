"""
Pydantic schemas for the preferences API.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from voicejournal.users.models import DEFAULT_TIMEZONE


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SavePreferencesRequest(CamelModel):
    """Preferences submitted by the user.

    Formats are checked by the service so that violations surface as 400
    responses with actionable messages.
    """

    phone_number: str = Field(default="", description="E.164 phone number, e.g. +15551234567")
    preferred_call_time: str = Field(default="", description="Local call time, HH:MM (24-hour)")
    timezone: str = Field(default=DEFAULT_TIMEZONE, description="IANA timezone name")
    is_active: bool = Field(default=True, description="Whether daily calls are enabled")


class PreferencesResponse(CamelModel):
    user_id: str
    phone_number: str = ""
    preferred_call_time: str = ""
    timezone: str = DEFAULT_TIMEZONE
    is_active: bool = False
    schedule_ref: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SavePreferencesResponse(CamelModel):
    success: bool = True
    preferences: PreferencesResponse
