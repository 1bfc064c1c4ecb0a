import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRICT_TRANSITIONS"] = "true"
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_ROLE", None)

import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.session import get_db
from app.main import app as fastapi_app
from app.models.issue_history import IssueHistory  # noqa: F401  registers the child tables
from app.models.issue_note import IssueNote  # noqa: F401
from app.schemas.auth import ActorSession
from app.services.lifecycle import IssueLifecycle
from app.services.registry import IssueRegistry
from app.services.subscriptions import SubscriptionHub, hub


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def registry(db):
    return IssueRegistry(db, hub=SubscriptionHub())


@pytest.fixture
def uploads():
    return []


@pytest.fixture
def lifecycle(registry, clock, uploads):
    def fake_upload(data: bytes, content_type: str, path: str) -> str:
        uploads.append((path, content_type, len(data)))
        return f"https://cdn.example.test/{path}"

    return IssueLifecycle(registry, clock=clock, uploader=fake_upload)


@pytest.fixture
def citizen():
    return ActorSession(id="u1", name="Asha Citizen", role="citizen")


@pytest.fixture
def other_citizen():
    return ActorSession(id="u2", name="Kiran Citizen", role="citizen")


@pytest.fixture
def admin():
    return ActorSession(id="a1", name="Ravi Admin", role="admin")


@pytest.fixture
def report(lifecycle, citizen):
    """Create an issue with sensible defaults; keyword arguments override them."""
    def _report(**overrides):
        fields = {
            "title": "Large pothole on MG Road",
            "description": "Deep pothole near the central junction",
            "category": "Roads & Infrastructure",
            "latitude": 12.9716,
            "longitude": 77.5946,
        }
        session = overrides.pop("session", citizen)
        fields.update(overrides)
        return lifecycle.create(session, **fields)
    return _report


def make_token(sub: str, name: str, role: str, ttl: int = 900) -> str:
    now = int(time.time())
    payload = {"sub": sub, "name": name, "role": role, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


@pytest.fixture
def citizen_headers():
    return {"Authorization": f"Bearer {make_token('u1', 'Asha Citizen', 'citizen')}"}


@pytest.fixture
def other_citizen_headers():
    return {"Authorization": f"Bearer {make_token('u2', 'Kiran Citizen', 'citizen')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('a1', 'Ravi Admin', 'admin')}"}


@pytest.fixture
def client(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()
    hub.clear()
