from datetime import timedelta

import pytest

from notification_core.core.scheduling import Cadence, JobScheduler
from notification_core.models.enums import NotificationStatus, NotificationType
from notification_core.modules.devices.service import DeviceTokenRegistry
from notification_core.modules.health import HealthAggregator
from notification_core.modules.health.service import compute_health_score, health_label
from notification_core.modules.notifications.models import Notification
from notification_core.modules.notifications.repository import NotificationRepository

from tests.support import NOW


def _intent(session, user, status, created_at=NOW):
    repository = NotificationRepository(session)
    notification = repository.create(
        user_id=user.id,
        notification_type=NotificationType.STREAK_REMINDER,
        title="t",
        body="b",
        created_at=created_at,
    )
    if status is not NotificationStatus.PENDING:
        session.query(Notification).filter_by(id=notification.id).update({"status": status})
        session.commit()
    return notification


@pytest.fixture
def scheduler():
    instance = JobScheduler(timezone_name="UTC", clock=lambda: NOW)
    yield instance
    instance.shutdown()


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        (dict(failed=0, total=0, not_running=0, jobs=0, active_tokens=0), 100.0),
        (dict(failed=1, total=2, not_running=0, jobs=0, active_tokens=0), 75.0),
        (dict(failed=5, total=5, not_running=0, jobs=0, active_tokens=0), 50.0),
        (dict(failed=0, total=10, not_running=1, jobs=3, active_tokens=0), 90.0),
        (dict(failed=10, total=10, not_running=4, jobs=4, active_tokens=0), 20.0),
        (dict(failed=1, total=2, not_running=0, jobs=0, active_tokens=250), 77.5),
        (dict(failed=1, total=2, not_running=0, jobs=0, active_tokens=5000), 85.0),
        (dict(failed=0, total=0, not_running=0, jobs=0, active_tokens=5000), 100.0),
    ],
)
def test_compute_health_score(kwargs, expected):
    assert compute_health_score(**kwargs) == expected


@pytest.mark.parametrize(
    "score, label",
    [(100, "healthy"), (80, "healthy"), (79.99, "degraded"), (50, "degraded"), (49.9, "unhealthy")],
)
def test_health_label(score, label):
    assert health_label(score) == label


def test_empty_system_is_healthy(session):
    status = HealthAggregator(session, clock=lambda: NOW).status()

    assert status.health_score == 100.0
    assert status.status == "healthy"
    assert status.jobs == {"total": 0, "running": 0, "stopped": 0}
    assert status.notifications == {"sent": 0, "pending": 0, "failed": 0, "total": 0}


def test_stopped_jobs_lower_the_score(session, scheduler):
    scheduler.register("a", lambda: None, Cadence.every(minutes=5), start=True)
    scheduler.register("b", lambda: None, Cadence.every(minutes=5))

    status = HealthAggregator(session, scheduler, clock=lambda: NOW).status()

    assert status.jobs == {"total": 2, "running": 1, "stopped": 1}
    assert status.health_score == 85.0

    scheduler.start("b")
    assert HealthAggregator(session, scheduler, clock=lambda: NOW).status().health_score == 100.0


def test_failures_in_last_day_degrade_health(session, test_user):
    _intent(session, test_user, NotificationStatus.FAILED)
    _intent(session, test_user, NotificationStatus.READ)
    _intent(session, test_user, NotificationStatus.FAILED, created_at=NOW - timedelta(days=2))

    status = HealthAggregator(session, clock=lambda: NOW).status()

    assert status.notifications == {"sent": 1, "pending": 0, "failed": 1, "total": 2}
    assert status.health_score == 75.0
    assert status.status == "degraded"


def test_active_tokens_add_a_bonus(session, test_user):
    registry = DeviceTokenRegistry(session, clock=lambda: NOW)
    for index in range(3):
        registry.register(test_user.id, f"tok-{index}", "android")
    _intent(session, test_user, NotificationStatus.FAILED)
    _intent(session, test_user, NotificationStatus.SENT)

    status = HealthAggregator(session, bonus_scale=1, clock=lambda: NOW).status()

    assert status.tokens["active"] == 3
    assert status.health_score == 78.0


def test_status_is_read_only(session, test_user):
    _intent(session, test_user, NotificationStatus.PENDING)
    before = [(n.id, n.status) for n in session.query(Notification).all()]

    payload = HealthAggregator(session, clock=lambda: NOW).status().as_dict()

    session.expire_all()
    assert [(n.id, n.status) for n in session.query(Notification).all()] == before
    assert payload["generated_at"] == NOW.isoformat()
    assert payload["notifications"]["pending"] == 1
