"""API tests for the internal schedule-management and dispatch endpoints."""

from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from factories import INTERNAL_TOKEN, FakeCallProvider, FakeTriggerService, add_user
from voicejournal.calls.models import CallDirection, CallStatus
from voicejournal.calls.repository import CallRecordRepository
from voicejournal.dependencies import get_outbound_provider
from voicejournal.scheduling.cron import schedule_name
from voicejournal.shared.database import DatabaseManager
from voicejournal.users.repository import UserPreferencesRepository

AUTH = {"X-Internal-Token": INTERNAL_TOKEN}


@pytest.fixture
def provider(app: FastAPI) -> Iterator[FakeCallProvider]:
    fake = FakeCallProvider()
    app.dependency_overrides[get_outbound_provider] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


class TestScheduleEndpoint:
    @pytest.mark.asyncio
    async def test_requires_internal_token(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/internal/schedules",
            json={"action": "DELETE", "userId": "user-1"},
        )
        assert response.status_code == 401

        wrong = await async_client.post(
            "/internal/schedules",
            json={"action": "DELETE", "userId": "user-1"},
            headers={"X-Internal-Token": "nope"},
        )
        assert wrong.status_code == 401

    @pytest.mark.asyncio
    async def test_create_then_delete(
        self,
        async_client: AsyncClient,
        db: DatabaseManager,
        trigger_service: FakeTriggerService,
    ) -> None:
        await add_user(db, "user-1")

        created = await async_client.post(
            "/internal/schedules",
            json={
                "action": "CREATE",
                "userId": "user-1",
                "phoneNumber": "+15551230001",
                "preferredCallTime": "09:00",
                "timezone": "America/New_York",
            },
            headers=AUTH,
        )
        assert created.status_code == 200
        assert created.json()["success"] is True
        assert created.json()["scheduleArn"].endswith(schedule_name("user-1"))

        async with db.session() as session:
            prefs = await UserPreferencesRepository(session).get("user-1")
        assert prefs is not None
        assert prefs.schedule_ref == created.json()["scheduleArn"]

        deleted = await async_client.post(
            "/internal/schedules",
            json={"action": "DELETE", "userId": "user-1"},
            headers=AUTH,
        )
        assert deleted.json() == {"success": True, "scheduleArn": None}
        assert trigger_service.schedules == {}

    @pytest.mark.asyncio
    async def test_missing_fields(self, async_client: AsyncClient, trigger_service: FakeTriggerService) -> None:
        response = await async_client.post(
            "/internal/schedules",
            json={"action": "CREATE", "userId": "user-1", "timezone": "UTC"},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert trigger_service.calls == []

    @pytest.mark.asyncio
    async def test_create_for_unknown_user_is_404(
        self,
        async_client: AsyncClient,
        trigger_service: FakeTriggerService,
    ) -> None:
        response = await async_client.post(
            "/internal/schedules",
            json={
                "action": "CREATE",
                "userId": "ghost",
                "phoneNumber": "+15551230001",
                "preferredCallTime": "09:00",
                "timezone": "UTC",
            },
            headers=AUTH,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"
        assert trigger_service.schedules == {}

    @pytest.mark.asyncio
    async def test_unknown_action(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/internal/schedules",
            json={"action": "PAUSE", "userId": "user-1"},
            headers=AUTH,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_trigger_failure_is_502(
        self,
        async_client: AsyncClient,
        trigger_service: FakeTriggerService,
    ) -> None:
        trigger_service.fail_on.add("delete")

        response = await async_client.post(
            "/internal/schedules",
            json={"action": "DELETE", "userId": "user-1"},
            headers=AUTH,
        )
        assert response.status_code == 502


class TestDispatchEndpoint:
    @pytest.mark.asyncio
    async def test_dispatches_to_live_phone_number(
        self,
        async_client: AsyncClient,
        db: DatabaseManager,
        provider: FakeCallProvider,
    ) -> None:
        await add_user(db, "user-1", phone_number="+15551239999")

        response = await async_client.post(
            "/internal/dispatch",
            json={"userId": "user-1", "phoneNumber": "+15551230001"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json() == {"status": "dispatched", "callId": "CA_OUT_1", "reason": None}
        assert provider.requests[0].to == "+15551239999"
        assert provider.requests[0].user_id == "user-1"
        assert provider.requests[0].from_number == "+14155550000"

        async with db.session() as session:
            record = await CallRecordRepository(session).get("CA_OUT_1")
        assert record is not None
        assert record.direction == CallDirection.OUTBOUND
        assert record.status == CallStatus.INITIATED
        assert record.user_id == "user-1"

    @pytest.mark.parametrize(
        ("seed", "reason"),
        [
            (None, "user_not_found"),
            ({"is_active": False}, "inactive"),
            ({"phone_number": None, "preferred_call_time": None, "is_active": True}, "no_phone_number"),
        ],
    )
    @pytest.mark.asyncio
    async def test_skips_without_dialing(
        self,
        async_client: AsyncClient,
        db: DatabaseManager,
        provider: FakeCallProvider,
        seed: dict | None,
        reason: str,
    ) -> None:
        if seed is not None:
            await add_user(db, "user-1", **seed)

        response = await async_client.post(
            "/internal/dispatch",
            json={"userId": "user-1", "phoneNumber": "+15551230001"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "skipped"
        assert response.json()["reason"] == reason
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_provider_rejection_is_502(
        self,
        app: FastAPI,
        async_client: AsyncClient,
        db: DatabaseManager,
    ) -> None:
        await add_user(db, "user-1")
        failing = FakeCallProvider(fail=True)
        app.dependency_overrides[get_outbound_provider] = lambda: failing

        try:
            response = await async_client.post(
                "/internal/dispatch",
                json={"userId": "user-1", "phoneNumber": "+15551230001"},
                headers=AUTH,
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "UPSTREAM_ERROR"
