from datetime import timedelta

import pytest

from notification_core.core.exceptions import JobNotFoundError, ValidationError
from notification_core.core.scheduling import JobScheduler
from notification_core.core.scheduling.tasks import NotificationJobs, register_default_jobs
from notification_core.models.enums import DeliveryChannelName, NotificationStatus, NotificationType
from notification_core.modules.devices.service import DeviceTokenRegistry
from notification_core.modules.notifications.models import Notification
from notification_core.modules.notifications.service import NotificationRequest
from notification_core.modules.preferences.service import PreferenceResolver
from notification_core.services.operations import NotificationOperations

from tests.support import NOW


@pytest.fixture
def scheduler():
    instance = JobScheduler(timezone_name="UTC", clock=lambda: NOW)
    yield instance
    instance.shutdown()


@pytest.fixture
def operations(scheduler, session_factory, channels, clock):
    jobs = NotificationJobs(session_factory, channels=channels, clock=clock)
    register_default_jobs(scheduler, jobs)
    return NotificationOperations(scheduler, jobs)


def _announcements(session):
    session.expire_all()
    return (
        session.query(Notification)
        .filter_by(notification_type=NotificationType.SYSTEM_ANNOUNCEMENT)
        .order_by(Notification.user_id, Notification.id)
        .all()
    )


@pytest.mark.asyncio
async def test_trigger_achievement_check_for_selected_users(
    operations, user_factory, achievement_factory
):
    achievement_factory("Welcome", {"user_registration": {"required": True}})
    first, second = user_factory(), user_factory()

    response = await operations.trigger_achievement_check([first.id, 999])

    assert response["summary"] == {
        "totalUsers": 2,
        "successfulChecks": 1,
        "failedChecks": 1,
        "totalNewAchievements": 1,
    }
    assert response["results"][0]["achievements"] == ["Welcome"]
    assert second.id not in [item["userId"] for item in response["results"]]


@pytest.mark.asyncio
async def test_trigger_achievement_check_for_everyone(operations, user_factory, achievement_factory):
    achievement_factory("Welcome", {"user_registration": {"required": True}})
    for _ in range(2):
        user_factory()

    response = await operations.trigger_achievement_check()

    assert response["summary"]["totalUsers"] == 2
    assert response["summary"]["totalNewAchievements"] == 2


@pytest.mark.asyncio
async def test_trigger_device_token_cleanup(session, operations, test_user):
    registry = DeviceTokenRegistry(session, clock=lambda: NOW)
    registry.register(test_user.id, "one", "web")
    registry.register(test_user.id, "two", "web")

    assert await operations.trigger_device_token_cleanup(test_user.id) == {
        "user_id": test_user.id,
        "tokens_cleaned": 1,
    }
    assert (await operations.trigger_device_token_cleanup())["tokens_cleaned"] == 0


def test_get_system_status_reports_registered_jobs(operations):
    status = operations.get_system_status()

    assert status.jobs == {"total": 11, "running": 0, "stopped": 11}
    # nothing running yet: 100 - 30
    assert status.health_score == 70.0
    assert status.status == "degraded"


def test_get_job_status(operations):
    operations.scheduler.start("streak_reminders")

    response = operations.get_job_status()

    by_name = {job["name"]: job for job in response["jobs"]}
    assert len(by_name) == 11
    assert by_name["streak_reminders"]["state"] == "running"
    assert by_name["streak_reminders"]["next_run_at"] is not None
    assert by_name["weekly_maintenance"]["next_run_at"] is None
    assert response["metrics"]["running_jobs"] == 1


@pytest.mark.asyncio
async def test_run_job_now(operations):
    result = await operations.run_job_now("pending_notifications_processor")

    assert result.success is True
    assert operations.scheduler.get("pending_notifications_processor").run_count == 1
    with pytest.raises(JobNotFoundError):
        await operations.run_job_now("does_not_exist")


def test_next_execution_times(operations):
    times = operations.next_execution_times("streak_reminders", count=2)

    assert [t.isoformat() for t in times] == [
        "2026-03-04T19:00:00+00:00",
        "2026-03-07T19:00:00+00:00",
    ]


@pytest.mark.asyncio
async def test_emergency_notification_to_all_active_users(session, operations, user_factory, channels):
    first, second = user_factory(), user_factory()
    user_factory(is_active=False)

    response = await operations.send_emergency_notification("Outage", "We are on it")

    assert response["target_users"] == 2
    assert (response["successful"], response["failed"]) == (2, 0)
    announcements = _announcements(session)
    assert [n.user_id for n in announcements] == [first.id, second.id]
    assert {n.status for n in announcements} == {NotificationStatus.SENT}
    assert announcements[0].title == "Outage"
    assert len(channels[DeliveryChannelName.IN_APP].calls) == 2


@pytest.mark.asyncio
async def test_emergency_notification_to_listed_users_dedupes(session, operations, user_factory):
    first = user_factory()

    response = await operations.send_emergency_notification("Heads up", "Body", [first.id, first.id])

    assert response["target_users"] == 1
    assert len(_announcements(session)) == 1


@pytest.mark.asyncio
async def test_emergency_notification_respects_channel_preferences(session, operations, test_user):
    PreferenceResolver(session, timezone_name="UTC").update(
        test_user.id,
        "system_announcement",
        {"in_app_enabled": False, "push_enabled": False, "email_enabled": False},
    )

    response = await operations.send_emergency_notification("Outage", "Body", [test_user.id])

    assert response["successful"] == 1
    [announcement] = _announcements(session)
    assert announcement.status == NotificationStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "title, body, target",
    [("", "body", "all"), ("   ", "body", "all"), ("title", "", "all"), ("title", "body", "everyone")],
)
async def test_emergency_notification_validation(operations, title, body, target):
    with pytest.raises(ValidationError):
        await operations.send_emergency_notification(title, body, target)


@pytest.mark.asyncio
async def test_scheduled_notification_runs_through_operations(session, operations, user_factory):
    users = [user_factory(), user_factory()]
    one_time = operations.schedule_notification(
        users[0].id,
        "system_announcement",
        "system_announcement",
        {"announcement_title": "Later", "announcement_content": "Soon"},
        NOW + timedelta(hours=1),
    )
    bulk = operations.schedule_bulk(
        [
            NotificationRequest(
                user.id,
                "system_announcement",
                "system_announcement",
                {"announcement_title": "Bulk", "announcement_content": "All"},
            )
            for user in users
        ],
        NOW + timedelta(hours=1),
    )

    metrics = operations.get_job_status()["metrics"]
    assert metrics["by_kind"] == {"recurring": 11, "one_time": 1, "bulk": 1}

    await operations.run_job_now(one_time)
    await operations.run_job_now(bulk)

    assert [n.title for n in _announcements(session)] == ["Later", "Bulk", "Bulk"]
    assert operations.get_job_status()["metrics"]["total_jobs"] == 11
