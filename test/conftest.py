"""
Pytest configuration and shared fixtures.
"""
from __future__ import annotations

import base64
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from factories import INTERNAL_TOKEN, TWILIO_AUTH_TOKEN, WEBHOOK_BASE_URL, FakeTriggerService
from voicejournal.config import Settings
from voicejournal.main import create_app
from voicejournal.scheduling.config import SchedulerConfig
from voicejournal.shared.database import DatabaseManager
from voicejournal.telephony.config import ProviderType, TelephonyConfig


@pytest.fixture
def telnyx_private_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture
def telnyx_public_key_b64(telnyx_private_key: Ed25519PrivateKey) -> str:
    raw = telnyx_private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        app_env="dev",
        debug=True,
        database_url="sqlite+aiosqlite:///:memory:",
        internal_api_token=INTERNAL_TOKEN,
        journal_page_size_default=20,
        journal_page_size_max=100,
    )


@pytest.fixture
def telephony_config(telnyx_public_key_b64: str) -> TelephonyConfig:
    return TelephonyConfig(
        provider_type=ProviderType.TWILIO,
        twilio_account_sid="AC_TEST_ACCOUNT_SID",
        twilio_auth_token=TWILIO_AUTH_TOKEN,
        twilio_from_number="+14155550000",
        telnyx_api_key="KEY_TEST",
        telnyx_public_key=telnyx_public_key_b64,
        telnyx_connection_id="conn-test-1",
        telnyx_from_number="+14155550001",
        webhook_base_url=WEBHOOK_BASE_URL,
        skip_signature_verification=False,
    )


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        aws_region="us-east-1",
        schedule_group="voice-journal-user-calls",
        target_arn="arn:aws:lambda:us-east-1:123456789012:function:dispatch",
        role_arn="arn:aws:iam::123456789012:role/scheduler-invoke",
    )


@pytest.fixture
def trigger_service() -> FakeTriggerService:
    return FakeTriggerService()


@pytest_asyncio.fixture
async def db(test_settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    """In-memory database with all tables created."""
    manager = DatabaseManager(test_settings.database_url)
    await manager.create_all()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def db_session(db: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with db.session_factory() as session:
        yield session


@pytest.fixture
def app(
    test_settings: Settings,
    telephony_config: TelephonyConfig,
    scheduler_config: SchedulerConfig,
    db: DatabaseManager,
    trigger_service: FakeTriggerService,
) -> FastAPI:
    return create_app(
        settings=test_settings,
        telephony_config=telephony_config,
        scheduler_config=scheduler_config,
        db=db,
        trigger_service=trigger_service,
    )


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
