"""
Pydantic schemas for the internal invocation endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from voicejournal.scheduling.reconciler import ScheduleAction


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleInvocation(_CamelModel):
    """Schedule management payload."""

    action: ScheduleAction
    user_id: str = Field(..., min_length=1)
    phone_number: str | None = None
    preferred_call_time: str | None = None
    timezone: str | None = None


class ScheduleInvocationResponse(_CamelModel):
    success: bool
    schedule_arn: str | None = None


class DispatchInvocation(_CamelModel):
    """Trigger payload delivered when a user's schedule fires."""

    user_id: str = Field(..., min_length=1)
    phone_number: str = ""


class DispatchInvocationResponse(_CamelModel):
    status: str
    call_id: str | None = None
    reason: str | None = None
