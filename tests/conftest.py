# ruff: noqa: E402
import os

import pytest

# Set testing environment flags before importing settings or the app
os.environ["APP_ENV"] = "test"
os.environ["DISABLE_EXTERNAL_NOTIFICATIONS"] = "1"
os.environ["ENABLE_SCHEDULER"] = "0"

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from notification_core.core.database import Base
from notification_core.models import registry  # noqa: F401  (registers every table)
from notification_core.models.enums import DeliveryChannelName
from notification_core.modules.achievements.models import Achievement
from notification_core.modules.notifications.common import in_flight_cache
from notification_core.modules.users.models import User

from tests.support import NOW, RecordingChannel

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def session():
    """Fresh schema and session for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def session_factory(session):
    """Session factory for code that opens its own sessions (jobs, operations)."""
    return TestingSessionLocal


@pytest.fixture(autouse=True)
def _clear_in_flight_claims():
    in_flight_cache.clear()
    yield
    in_flight_cache.clear()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def channels():
    return {
        DeliveryChannelName.PUSH: RecordingChannel(DeliveryChannelName.PUSH),
        DeliveryChannelName.EMAIL: RecordingChannel(DeliveryChannelName.EMAIL),
        DeliveryChannelName.IN_APP: RecordingChannel(DeliveryChannelName.IN_APP),
    }


@pytest.fixture
def channel_factory():
    return RecordingChannel


@pytest.fixture
def user_factory(session):
    counter = {"n": 0}

    def _create(**fields):
        counter["n"] += 1
        values = {
            "username": f"learner{counter['n']}",
            "email": f"learner{counter['n']}@example.com",
            "is_active": True,
            "created_at": NOW,
        }
        values.update(fields)
        user = User(**values)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _create


@pytest.fixture
def test_user(user_factory):
    return user_factory()


@pytest.fixture
def achievement_factory(session):
    def _create(name, requirements, **fields):
        achievement = Achievement(
            name=name,
            description=fields.pop("description", f"{name} description"),
            requirements=requirements,
            points=fields.pop("points", 10),
            **fields,
        )
        session.add(achievement)
        session.commit()
        session.refresh(achievement)
        return achievement

    return _create
