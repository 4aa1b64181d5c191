import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

os.environ.setdefault("REQUEST_DB", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["RABBIT_URL"] = ""
os.environ["REDIS_URL"] = ""
os.environ["PROVIDER_SERVICE_URL"] = ""
os.environ["USER_SERVICE_URL"] = ""

from fastapi.testclient import TestClient
from jose import jwt

from shared.database import get_engine, get_session

from app import models  # noqa: F401  registers the tables on Base
from app.config import JWT_ALGORITHM, JWT_SECRET
from app.db import Base
from app.main import app
from app.models import PaymentMethod, PricingType, RequestStatus, ServiceRequest, new_id, utcnow
from app.pricing import ProviderRates
from app.routes import get_provider_directory, get_store, get_user_directory
from app.sessions import build_sessions
from app.store import RequestStore

CLIENT_ID = "client-ana"
PROVIDER_ID = "provider-paulo"
OUTSIDER_ID = "outsider-rita"


def future(days: int = 3, hour: int = 9) -> datetime:
    return (datetime.now(timezone.utc) + timedelta(days=days)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )


def auth(user_id: str) -> dict:
    token = jwt.encode({"sub": user_id}, JWT_SECRET, algorithm=JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def make_request(**overrides) -> ServiceRequest:
    now = utcnow()
    fields = dict(
        id=new_id(),
        client_id=CLIENT_ID,
        provider_id=PROVIDER_ID,
        title="Fix the kitchen sink",
        description="Leaking under the cabinet",
        status=RequestStatus.PENDING,
        pricing_type=PricingType.FIXED,
        proposed_price=Decimal("120.00"),
        daily_sessions=[],
        negotiations=[],
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return ServiceRequest(**fields)


def make_daily_request(days: int = 3, **overrides) -> ServiceRequest:
    start = overrides.pop("scheduled_date", future())
    fields = dict(
        pricing_type=PricingType.DAILY,
        proposed_price=Decimal("300.00"),
        proposed_days=days,
        scheduled_date=start,
        daily_sessions=build_sessions(start, days),
    )
    fields.update(overrides)
    return make_request(**fields)


def paid(request: ServiceRequest) -> ServiceRequest:
    request.status = RequestStatus.ACCEPTED
    request.payment_method = PaymentMethod.PIX
    request.payment_completed_at = utcnow()
    return request


def event_types(events) -> list:
    return [e["event_type"] for e in events]


class RecordingPublisher:
    enabled = True

    def __init__(self):
        self.published = []

    async def publish(self, routing_key: str, message_body: str):
        self.published.append((routing_key, json.loads(message_body)))

    def routing_keys(self) -> list:
        return [rk for rk, _ in self.published]


class FakeProviderDirectory:
    def __init__(self, rates: ProviderRates | None = None):
        self._rates = rates

    async def rates(self, provider_id: str, request_id: str | None = None):
        return self._rates


class FakeUserDirectory:
    names = {CLIENT_ID: "Ana Souza", PROVIDER_ID: "Paulo Lima"}

    async def display_name(self, user_id: str, request_id: str | None = None):
        return self.names.get(user_id)


class FakeRedis:
    def __init__(self):
        self.values = {}

    async def exists(self, key):
        return 1 if key in self.values else 0

    async def set(self, key, value, ex=None):
        self.values[key] = value


@pytest.fixture
def session_factory(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'requests.db'}")

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield get_session(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def store(session_factory, publisher) -> RequestStore:
    return RequestStore(session_factory, publisher)


@pytest.fixture
def providers() -> FakeProviderDirectory:
    return FakeProviderDirectory()


@pytest.fixture
def client(store, providers):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_provider_directory] = lambda: providers
    app.dependency_overrides[get_user_directory] = lambda: FakeUserDirectory()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class InterferingStore(RequestStore):
    """Runs `interfere` between each read and its commit, like a concurrent writer."""

    def __init__(self, *args, interfere, times: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self._interfere = interfere
        self._times = times
        self.loads = 0

    async def _load(self, db, request_id, lock=False):
        request = await super()._load(db, request_id, lock)
        self.loads += 1
        if self.loads <= self._times:
            await self._interfere(request_id)
        return request
