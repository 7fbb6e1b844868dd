"""Tests for the schedule reconciler."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from factories import FakeTriggerService, add_user
from voicejournal.scheduling.cron import schedule_name
from voicejournal.scheduling.reconciler import (
    ScheduleAction,
    ScheduleReconciler,
    ScheduleRequest,
)
from voicejournal.shared.database import DatabaseManager
from voicejournal.shared.exceptions import NotFoundError, UpstreamError, ValidationError
from voicejournal.users.repository import UserPreferencesRepository

NAME = schedule_name("user-1")


@pytest.fixture
def reconciler(db_session: AsyncSession, trigger_service: FakeTriggerService) -> ScheduleReconciler:
    return ScheduleReconciler(triggers=trigger_service, users=UserPreferencesRepository(db_session))


def _request(action: ScheduleAction, **kwargs) -> ScheduleRequest:
    defaults = dict(
        user_id="user-1",
        phone_number="+15551230001",
        preferred_call_time="09:00",
        timezone="America/New_York",
    )
    defaults.update(kwargs)
    return ScheduleRequest(action=action, **defaults)


@pytest.mark.asyncio
async def test_create_builds_utc_trigger_and_stores_ref(
    db: DatabaseManager,
    db_session: AsyncSession,
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
) -> None:
    await add_user(db, "user-1")

    result = await reconciler.apply(_request(ScheduleAction.CREATE))

    assert result.success is True
    spec = trigger_service.schedules[NAME]
    assert spec.expression == "cron(0 14 * * ? *)"
    assert spec.payload == {"userId": "user-1", "phoneNumber": "+15551230001"}
    prefs = await UserPreferencesRepository(db_session).get("user-1")
    assert prefs is not None
    assert prefs.schedule_ref == result.schedule_ref
    assert result.schedule_ref is not None and result.schedule_ref.endswith(NAME)


@pytest.mark.asyncio
async def test_create_on_existing_trigger_updates(
    db: DatabaseManager,
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
) -> None:
    await add_user(db, "user-1")

    await reconciler.apply(_request(ScheduleAction.CREATE))
    await reconciler.apply(_request(ScheduleAction.CREATE, preferred_call_time="10:30"))

    assert ("update", NAME) in trigger_service.calls
    assert len(trigger_service.schedules) == 1
    assert trigger_service.schedules[NAME].expression == "cron(30 15 * * ? *)"


@pytest.mark.asyncio
async def test_update_without_trigger_behaves_like_create(
    db: DatabaseManager,
    db_session: AsyncSession,
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
) -> None:
    await add_user(db, "user-1")

    result = await reconciler.apply(_request(ScheduleAction.UPDATE, timezone="Europe/London"))

    assert ("create", NAME) in trigger_service.calls
    assert trigger_service.schedules[NAME].expression == "cron(0 9 * * ? *)"
    prefs = await UserPreferencesRepository(db_session).get("user-1")
    assert prefs is not None
    assert prefs.schedule_ref == result.schedule_ref


@pytest.mark.asyncio
async def test_delete_twice_is_noop(
    db: DatabaseManager,
    db_session: AsyncSession,
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
) -> None:
    await add_user(db, "user-1", schedule_ref="arn:old")
    await reconciler.apply(_request(ScheduleAction.CREATE))

    first = await reconciler.apply(ScheduleRequest(action=ScheduleAction.DELETE, user_id="user-1"))
    second = await reconciler.apply(ScheduleRequest(action=ScheduleAction.DELETE, user_id="user-1"))

    assert first.success and second.success
    assert trigger_service.schedules == {}
    prefs = await UserPreferencesRepository(db_session).get("user-1")
    assert prefs is not None
    assert prefs.schedule_ref is None


@pytest.mark.parametrize(
    "missing",
    [{"phone_number": None}, {"preferred_call_time": ""}, {"timezone": None}],
)
@pytest.mark.asyncio
async def test_missing_fields_rejected_before_external_call(
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
    missing: dict,
) -> None:
    with pytest.raises(ValidationError):
        await reconciler.apply(_request(ScheduleAction.CREATE, **missing))
    assert trigger_service.calls == []


@pytest.mark.asyncio
async def test_invalid_time_rejected_before_external_call(
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
) -> None:
    with pytest.raises(ValidationError):
        await reconciler.apply(_request(ScheduleAction.UPDATE, preferred_call_time="25:00"))
    assert trigger_service.calls == []


@pytest.mark.asyncio
async def test_missing_user_id_rejected(reconciler: ScheduleReconciler) -> None:
    with pytest.raises(ValidationError):
        await reconciler.apply(ScheduleRequest(action=ScheduleAction.DELETE, user_id=""))


@pytest.mark.asyncio
async def test_upstream_failure_propagates_without_ref_change(
    db: DatabaseManager,
    db_session: AsyncSession,
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
) -> None:
    await add_user(db, "user-1", schedule_ref="arn:previous")
    trigger_service.fail_on.add("create")

    with pytest.raises(UpstreamError):
        await reconciler.apply(_request(ScheduleAction.CREATE))

    prefs = await UserPreferencesRepository(db_session).get("user-1")
    assert prefs is not None
    assert prefs.schedule_ref == "arn:previous"


@pytest.mark.parametrize("action", [ScheduleAction.CREATE, ScheduleAction.UPDATE])
@pytest.mark.asyncio
async def test_unknown_user_gets_no_trigger(
    db_session: AsyncSession,
    reconciler: ScheduleReconciler,
    trigger_service: FakeTriggerService,
    action: ScheduleAction,
) -> None:
    with pytest.raises(NotFoundError):
        await reconciler.apply(_request(action, user_id="ghost"))

    assert trigger_service.calls == []
    assert trigger_service.schedules == {}
    assert await UserPreferencesRepository(db_session).get("ghost") is None
