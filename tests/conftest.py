import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MUTE_STORE_BACKEND", "memory")
os.environ.pop("ALERT_WEBHOOK_URL", None)

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from support_relay.database import Base, get_db
from support_relay.models import User
from support_relay.services.bot_engine import BotDecisionEngine, get_bot_engine
from support_relay.services.mute_store import InMemoryMuteStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingBroadcaster:
    """Collects emissions instead of sending them to Socket.IO."""

    def __init__(self):
        self.published = []

    async def publish(self, emissions):
        emissions = list(emissions)
        self.published.extend(emissions)
        return len(emissions)

    def events(self, event=None, room=None):
        return [
            emission
            for emission in self.published
            if (event is None or emission.event == event) and (room is None or emission.room == room)
        ]


class FakeSocketServer:
    """Just enough of socketio.AsyncServer for the registry and handlers."""

    def __init__(self):
        self.handlers = {}
        self.memberships = {}
        self.emitted = []

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    def rooms(self, sid, namespace=None):
        return [sid] + sorted(self.memberships.get(sid, set()))

    async def enter_room(self, sid, room, namespace=None):
        self.memberships.setdefault(sid, set()).add(room)

    async def leave_room(self, sid, room, namespace=None):
        self.memberships.get(sid, set()).discard(room)

    async def emit(self, event, data=None, room=None, to=None, **kwargs):
        self.emitted.append({"event": event, "data": data, "room": room or to})

    def emitted_to(self, target, event=None):
        return [
            item for item in self.emitted if item["room"] == target and (event is None or item["event"] == event)
        ]


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    def _make_user(user_id="u1", username=None):
        user = User(user_id=user_id, username=username or f"User {user_id}")
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mute_store():
    return InMemoryMuteStore()


@pytest.fixture
def bot_engine(mute_store, clock):
    return BotDecisionEngine(mute_store, clock=clock, silence_minutes=30)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def fake_sio():
    return FakeSocketServer()


@pytest.fixture
def client(session_factory, bot_engine, broadcaster):
    from support_relay.main import app
    from support_relay.routers.deps import get_broadcaster

    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_bot_engine] = lambda: bot_engine
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
