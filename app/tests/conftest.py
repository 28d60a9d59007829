from datetime import date, datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session

from app.core.dependencies import get_broadcaster
from app.core.redis_client import get_redis_client
from app.database.db import Base, get_db
from app.main import app
from app.models.users import User
from app.models.workshops import Workshop
from app.services.broadcaster import EventBroadcaster
from app.services.checkin import CheckinService
from app.services.token_store import TokenStore


class FrozenClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def timestamp(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


# Use a file-backed SQLite database per test so worker threads get their own connections
@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db: Session = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def redis_client(fake_redis, monkeypatch: pytest.MonkeyPatch):
    """Point every Redis consumer at the fake server."""
    monkeypatch.setattr("app.services.seat_ledger.get_redis_client", lambda: fake_redis)
    monkeypatch.setattr("app.tasks.get_redis_client", lambda: fake_redis)
    return fake_redis


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def broadcaster():
    return EventBroadcaster(queue_size=50)


@pytest.fixture
def token_store(redis_client, clock):
    return TokenStore(redis_client, clock=clock)


@pytest.fixture
def service(token_store, broadcaster, clock):
    return CheckinService(token_store, broadcaster, clock=clock)


@pytest.fixture
def make_user(db_session: Session):
    counter = {"n": 0}

    def _make_user(name: str | None = None, role: str = "user") -> User:
        counter["n"] += 1
        name = name or f"User {counter['n']}"
        user = User(name=name, email=f"user{counter['n']}@example.com", role=role)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_workshop(db_session: Session, clock):
    def _make_workshop(
        total_seats: int = 10,
        available_seats: int | None = None,
        on: date | None = None,
        title: str = "Test Workshop",
    ) -> Workshop:
        workshop = Workshop(
            title=title,
            description="",
            trainer="Sarah Johnson",
            date=on or clock.today() + timedelta(days=7),
            time="09:00",
            duration="4 hours",
            location="Conference Room A",
            category="Leadership",
            total_seats=total_seats,
            available_seats=total_seats if available_seats is None else available_seats,
        )
        db_session.add(workshop)
        db_session.commit()
        db_session.refresh(workshop)
        return workshop

    return _make_workshop


@pytest.fixture
def client(session_factory, redis_client, broadcaster):
    # Override the database, Redis and broadcaster dependencies
    def override_get_db():
        db: Session = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: redis_client
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    yield TestClient(app)
    app.dependency_overrides.clear()
