"""Pytest fixtures: file-backed SQLite database, rebuilt for every test."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from eventfinder.database import Base, enable_sqlite_foreign_keys, get_db
from eventfinder.deps import get_location_registry, get_media_resolver
from eventfinder.main import app
from eventfinder.models.attendance import EventGoing
from eventfinder.services.kv_store import KeyValueStore
from eventfinder.services.location import GeoResolverRegistry
from eventfinder.services.media import MediaURLResolver, SignedUrlCache, UrlStrategy, signed_marker

# Import all models so they register with Base.metadata
from eventfinder.models.profile import Profile                # noqa: F401
from eventfinder.models.event import Event                    # noqa: F401
from eventfinder.models.rating import EventRating             # noqa: F401
from eventfinder.models.comment import EventComment           # noqa: F401
from eventfinder.models.image import EventImage               # noqa: F401
from eventfinder.models.follow import OrganizerFollow         # noqa: F401

SQLITE_URL = "sqlite:///./test.db"
STORAGE_BASE = "https://storage.test"


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSigner(UrlStrategy):
    """Issues a new signed URL per call and records every call."""

    name = "signed"

    def __init__(self):
        self.calls = []
        self._serial = count(1)

    def url_for(self, bucket, path, ttl):
        self.calls.append((bucket, path, ttl))
        return f"{STORAGE_BASE}{signed_marker(bucket)}{path}?token=t{next(self._serial)}"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
    enable_sqlite_foreign_keys(engine)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session bound to the test engine."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def signer():
    return FakeSigner()


@pytest.fixture(scope="function")
def media_resolver(clock, signer):
    return MediaURLResolver(SignedUrlCache(clock=clock), [signer])


@pytest.fixture(scope="function")
def location_registry():
    return GeoResolverRegistry(KeyValueStore())


@pytest.fixture(scope="function")
def client(db_engine, media_resolver, location_registry):
    """FastAPI TestClient with the database and process-wide caches overridden."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_media_resolver] = lambda: media_resolver
    app.dependency_overrides[get_location_registry] = lambda: location_registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: create rows via the API, return the JSON response dict
# ---------------------------------------------------------------------------
def hours_from_now(hours: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


def create_test_profile(client: TestClient, username: str = "tester", role: str = "user", city: str = None) -> dict:
    """Helper: POST /api/profiles and return response JSON."""
    resp = client.post("/api/profiles/", json={"username": username, "role": role, "city": city})
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_event(
    client: TestClient,
    organizer_id: str,
    title: str = "Warehouse Night",
    starts_at: datetime = None,
    ends_at: datetime = None,
    status: str = "published",
    **fields,
) -> dict:
    """Helper: POST /api/events and return response JSON.

    Defaults to a published event starting in 24h and lasting 6h.
    """
    starts_at = starts_at or hours_from_now(24)
    ends_at = ends_at or starts_at + timedelta(hours=6)
    payload = {
        "title": title,
        "region": "Osrednjeslovenska",
        "city": "Ljubljana",
        "address": "Metelkova 1",
        "starts_at": starts_at.isoformat(),
        "ends_at": ends_at.isoformat(),
        "genre": "techno",
        "price_type": "free",
        "status": status,
    }
    payload.update(fields)
    resp = client.post("/api/events/", params={"actor_user_id": organizer_id}, json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_past_event(client: TestClient, organizer_id: str, ended_hours_ago: float = 2, **fields) -> dict:
    """Helper: an event that ended ``ended_hours_ago`` hours ago (lasting 6h)."""
    ends_at = hours_from_now(-ended_hours_ago)
    return create_test_event(client, organizer_id, starts_at=ends_at - timedelta(hours=6), ends_at=ends_at, **fields)


def add_going(db, event_id: str, user_id: str) -> None:
    """Insert a going mark directly, bypassing the window (for events already over)."""
    db.add(EventGoing(event_id=event_id, user_id=user_id))
    db.commit()
