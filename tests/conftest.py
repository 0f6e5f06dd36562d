"""Shared test fixtures and configuration."""
import pytest
import os
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import asyncio
import uuid

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RINGING_SWEEP_INTERVAL_SECONDS", "0")

from platecall.main import app
from platecall.db.database import get_db
from platecall.db.models import Base, CallStatus
from platecall.core.config import Settings
from platecall.core.dependencies import get_call_event_hub
from platecall.core.errors import CallNotFoundError, PlateNotFoundError
from platecall.services.call_session.models import CallSessionView, TransitionResult
from platecall.services.media.base import MediaCredentials, MediaSessionAdapter
from platecall.services.media.inline import InlineMediaAdapter
from platecall.services.notifications.hub import CallEventHub
from platecall.services.persistence.calls import TRANSITION_SOURCES
from platecall.services.plates.resolver import normalize_plate
from platecall.services.signaling.gateway import CallGateway
from platecall.services.signaling.ringtone import Ringtone


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        agora_app_id="test-app-id",
        agora_app_certificate="test-app-certificate",
        token_default_ttl_seconds=3600,
        token_max_ttl_seconds=86400,
        ringing_sweep_interval_seconds=0,
    )


def _create_test_engine():
    return create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


async def _create_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = _create_test_engine()

    # Create all tables
    await _create_tables(engine)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def hub():
    """Fresh event hub, isolated from the process-wide one."""
    return CallEventHub()


@pytest.fixture
def test_client(hub, test_settings, monkeypatch):
    """
    Create FastAPI test client with overrides.

    The database engine is created here and its tables are built on the
    client's own event loop, so every session the app opens lives on the
    loop that serves requests.
    """
    engine = _create_test_engine()
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    # Override dependencies
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_call_event_hub] = lambda: hub

    # Override settings in modules that use it
    monkeypatch.setattr("platecall.core.dependencies.settings", test_settings)

    with TestClient(app) as client:
        client.portal.call(_create_tables, engine)
        yield client
        client.portal.call(engine.dispose)

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def registered_client(test_client):
    """Test client with a few vehicles registered."""
    for vehicle in (
        {"plate": "AB 123 CD", "owner_id": "owner-1"},
        {"plate": "XY987", "owner_id": "owner-2"},
        {"plate": "OFF111", "owner_id": "owner-3", "active": False},
        {"plate": "NOOWNER1"},
    ):
        response = test_client.post("/api/vehicles", json=vehicle)
        assert response.status_code == 200
    return test_client


class FakeCallGateway(CallGateway):
    """In-memory CallGateway applying the same transition rules as the store."""

    def __init__(self, plates: Optional[Dict[str, str]] = None, staleness_seconds: float = 120):
        self.plates = plates or {"AB123CD": "owner-1"}
        self.staleness_seconds = staleness_seconds
        self.calls: Dict[str, CallSessionView] = {}
        self.writes: List[Tuple[str, CallStatus]] = []
        self.tokens: List[Tuple[str, str]] = []
        self.token_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.poll_error: Optional[Exception] = None
        self.events: "asyncio.Queue[CallSessionView]" = asyncio.Queue()
        # Responses held back until the named gate is set: "start_call",
        # "issue_token", or a status value such as "accepted".
        self.gates: Dict[str, asyncio.Event] = {}

    def hold(self, name: str) -> asyncio.Event:
        """Delay the response of ``name`` until the returned event is set."""
        gate = self.gates[name] = asyncio.Event()
        return gate

    async def _pass_gate(self, name: str) -> None:
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()

    def add_call(
        self,
        owner_id: str = "owner-1",
        channel: str = "AB123CD",
        status: CallStatus = CallStatus.RINGING,
        created_at: Optional[datetime] = None,
    ) -> CallSessionView:
        call = CallSessionView(
            id=str(uuid.uuid4()),
            plate=channel,
            owner_id=owner_id,
            channel=channel,
            status=status,
            caller_info={"via": "test"},
            created_at=created_at or datetime.utcnow(),
        )
        self.calls[call.id] = call
        return call

    def set_status(self, call_id: str, status: CallStatus) -> CallSessionView:
        """Change a row behind the engine's back, as another client would."""
        call = self.calls[call_id].model_copy(update={"status": status})
        self.calls[call_id] = call
        return call

    async def start_call(self, plate, via=None, caller_info=None) -> CallSessionView:
        await self._pass_gate("start_call")
        canonical = normalize_plate(plate)
        owner_id = self.plates.get(canonical)
        if owner_id is None:
            raise PlateNotFoundError.for_plate(plate, canonical)
        call = self.add_call(owner_id=owner_id, channel=canonical)
        self.events.put_nowait(call)
        return call

    async def get_fresh_ringing(self, owner_id: str) -> Optional[CallSessionView]:
        if self.poll_error is not None:
            raise self.poll_error
        now = datetime.utcnow()
        ringing = [
            call for call in self.calls.values()
            if call.owner_id == owner_id
            and call.status == CallStatus.RINGING
            and (now - call.created_at).total_seconds() < self.staleness_seconds
        ]
        return max(ringing, key=lambda call: call.created_at, default=None)

    async def update_status(self, call_id: str, status: CallStatus) -> TransitionResult:
        self.writes.append((call_id, CallStatus(status)))
        if self.status_error is not None:
            raise self.status_error
        call = self.calls.get(call_id)
        if call is None:
            raise CallNotFoundError(f"Call {call_id} not found", call_id=call_id)
        if call.status not in TRANSITION_SOURCES[CallStatus(status)]:
            return TransitionResult(call=call, applied=False)
        call = self.set_status(call_id, CallStatus(status))
        self.events.put_nowait(call)
        # The write is committed; only the response is held back.
        await self._pass_gate(CallStatus(status).value)
        return TransitionResult(call=call, applied=True)

    async def issue_token(self, channel: str, role: str = "publisher") -> MediaCredentials:
        self.tokens.append((channel, role))
        await self._pass_gate("issue_token")
        if self.token_error is not None:
            raise self.token_error
        return MediaCredentials(app_id="test-app-id", channel=channel, uid=0, token="test-token")

    async def call_events(self, owner_id: str):
        while True:
            call = await self.events.get()
            if call.owner_id == owner_id:
                yield call

    def statuses_written(self, call_id: str) -> List[CallStatus]:
        return [status for written_id, status in self.writes if written_id == call_id]


class RecordingRingtone(Ringtone):
    """Ringtone counting start and stop calls."""

    def __init__(self):
        self.playing = False
        self.starts = 0
        self.stops = 0

    def start(self) -> None:
        self.playing = True
        self.starts += 1

    def stop(self) -> None:
        self.playing = False
        self.stops += 1


class FailingMediaAdapter(InlineMediaAdapter):
    """Inline adapter whose join or publish can be made to fail."""

    def __init__(self, fail_join: bool = False, fail_publish: bool = False):
        super().__init__()
        self.fail_join = fail_join
        self.fail_publish = fail_publish
        self.left = 0

    async def join(self, credentials):
        if self.fail_join:
            raise RuntimeError("network unreachable")
        return await super().join(credentials)

    async def publish(self, handle, local_audio):
        if self.fail_publish:
            raise PermissionError("microphone permission denied")
        await super().publish(handle, local_audio)

    async def leave(self, handle):
        self.left += 1
        await super().leave(handle)


@pytest.fixture
def fake_gateway():
    return FakeCallGateway()


@pytest.fixture
def ringtone():
    return RecordingRingtone()


@pytest.fixture
def media_adapter() -> MediaSessionAdapter:
    return InlineMediaAdapter()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )
