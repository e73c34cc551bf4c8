"""Shared test fixtures and configuration."""
import asyncio
import os
from unittest.mock import AsyncMock, Mock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CREATE_CALL_URL", "http://voicecall.test/api/calls")

from voicecall.main import app
from voicecall.db.database import get_db
from voicecall.db.models import Base
from voicecall.core.dependencies import get_http_client
from voicecall.services.call_session.duration import DurationPolicy
from voicecall.services.call_session.manager import CallLifecycleManager
from voicecall.services.http.retrying import RetryingHttpClient
from voicecall.services.notifications import CALL_ENDED, EventBus
from voicecall.services.persistence.usage import DatabaseUsageRecorder
from voicecall.services.persistence.wallets import MinutesWalletService
from tests.fakes import (
    JOIN_URL,
    FakeClock,
    FakeVoiceTransport,
    ManualTimer,
    RecordingNotifier,
    no_sleep,
)


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def usage_recorder(session_factory):
    """Database-backed usage recorder on the test database."""
    return DatabaseUsageRecorder(session_factory)


@pytest.fixture
def wallet_factory(session_factory):
    """Create a caller wallet with a given balance."""
    async def _create(caller_id: str, seconds: int):
        async with session_factory() as db:
            return await MinutesWalletService(db).initialize(caller_id, seconds=seconds)
    return _create


@pytest.fixture
def transports():
    """Every fake transport created by the transport factory, in order."""
    return []


@pytest.fixture
def transport_options():
    """Options applied to the next fake transports (mutable per test)."""
    return {"fail_join": False, "join_gate": None}


@pytest.fixture
def transport_factory(transports, transport_options):
    """Factory that builds fake transports and remembers them."""
    def _factory():
        transport = FakeVoiceTransport(**transport_options)
        transports.append(transport)
        return transport
    return _factory


@pytest.fixture
def create_call_response():
    """Mock httpx response from the call-creation endpoint."""
    response = Mock()
    response.json = Mock(return_value={"joinUrl": JOIN_URL, "callId": "abc123"})
    return response


@pytest.fixture
def mock_http_client(create_call_response):
    """Retrying HTTP client whose POST returns a join URL."""
    client = Mock(spec=RetryingHttpClient)
    client.post_json = AsyncMock(return_value=create_call_response)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manual_timer():
    return ManualTimer()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def call_ended(events):
    """Counts callEnded signals and lets a test wait for the next one."""
    class _CallEnded:
        def __init__(self):
            self.count = 0
            self._event = asyncio.Event()

        def __call__(self, payload):
            self.count += 1
            self._event.set()

        async def wait(self, timeout: float = 2.0):
            await asyncio.wait_for(self._event.wait(), timeout)
            self._event.clear()

    listener = _CallEnded()
    events.subscribe(CALL_ENDED, listener)
    return listener


@pytest.fixture
def manager(
    usage_recorder,
    notifier,
    mock_http_client,
    transport_factory,
    events,
    manual_timer,
    clock,
):
    """Call lifecycle manager wired to fakes and the test database."""
    return CallLifecycleManager(
        usage_recorder=usage_recorder,
        notifier=notifier,
        http_client=mock_http_client,
        transport_factory=transport_factory,
        events=events,
        duration_policy=DurationPolicy(sleep=manual_timer.sleep),
        create_call_url="http://voicecall.test/api/calls",
        clock=clock,
    )


@pytest.fixture
def override_get_db(test_db):
    """Override get_db dependency with test database."""
    async def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture
def override_get_http_client():
    """Override get_http_client with a client that does not wait between retries."""
    async def _override_get_http_client():
        async with RetryingHttpClient(sleep=no_sleep) as client:
            yield client
    return _override_get_http_client


@pytest.fixture
async def test_client(override_get_db, override_get_http_client):
    """Async API client with dependency overrides."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = override_get_http_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )
