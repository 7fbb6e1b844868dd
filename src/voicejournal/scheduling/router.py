"""
Internal invocation endpoints: schedule management and outbound dispatch.

These are called by the trigger service and operators, never by end users.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.calls.dispatcher import DispatchRequest, OutboundDispatcher
from voicejournal.calls.repository import CallRecordRepository
from voicejournal.dependencies import (
    get_outbound_provider,
    get_telephony_config,
    get_trigger_service,
    require_internal_token,
)
from voicejournal.scheduling.reconciler import ScheduleReconciler, ScheduleRequest
from voicejournal.scheduling.schemas import (
    DispatchInvocation,
    DispatchInvocationResponse,
    ScheduleInvocation,
    ScheduleInvocationResponse,
)
from voicejournal.scheduling.triggers import TriggerService
from voicejournal.shared.database import get_db_session
from voicejournal.shared.exceptions import UpstreamError
from voicejournal.telephony.config import TelephonyConfig
from voicejournal.telephony.interface import CallPlacementError, OutboundCallProvider
from voicejournal.users.repository import UserPreferencesRepository

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_token)],
)


def get_reconciler(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    triggers: Annotated[TriggerService, Depends(get_trigger_service)],
) -> ScheduleReconciler:
    return ScheduleReconciler(triggers=triggers, users=UserPreferencesRepository(session))


def get_dispatcher(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    provider: Annotated[OutboundCallProvider, Depends(get_outbound_provider)],
    cfg: Annotated[TelephonyConfig, Depends(get_telephony_config)],
) -> OutboundDispatcher:
    return OutboundDispatcher(
        users=UserPreferencesRepository(session),
        calls=CallRecordRepository(session),
        provider=provider,
        from_number=cfg.from_number,
    )


@router.post("/schedules", response_model=ScheduleInvocationResponse)
async def manage_schedule(
    body: ScheduleInvocation,
    reconciler: Annotated[ScheduleReconciler, Depends(get_reconciler)],
) -> ScheduleInvocationResponse:
    """CREATE, UPDATE or DELETE a user's recurring call trigger."""
    result = await reconciler.apply(
        ScheduleRequest(
            action=body.action,
            user_id=body.user_id,
            phone_number=body.phone_number,
            preferred_call_time=body.preferred_call_time,
            timezone=body.timezone,
        )
    )
    return ScheduleInvocationResponse(success=result.success, schedule_arn=result.schedule_ref)


@router.post("/dispatch", response_model=DispatchInvocationResponse)
async def dispatch_call(
    body: DispatchInvocation,
    dispatcher: Annotated[OutboundDispatcher, Depends(get_dispatcher)],
) -> DispatchInvocationResponse:
    """Place the scheduled journal call for one user."""
    try:
        result = await dispatcher.dispatch(
            DispatchRequest(user_id=body.user_id, phone_number=body.phone_number)
        )
    except CallPlacementError as e:
        raise UpstreamError(
            message="Failed to initiate call",
            details={"error_code": e.error_code},
        ) from e
    return DispatchInvocationResponse(status=result.status, call_id=result.call_id, reason=result.reason)
