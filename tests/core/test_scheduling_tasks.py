"""Default job set and task bodies, run against the test database."""
from datetime import timedelta

import pytest

from notification_core.core.scheduling import JobScheduler, JobState
from notification_core.core.scheduling.tasks import (
    MOTIVATIONAL_MESSAGES,
    NotificationJobs,
    register_default_jobs,
    schedule_bulk_notifications,
    schedule_one_time_notification,
)
from notification_core.models.enums import NotificationStatus, NotificationType
from notification_core.modules.devices.models import DeviceToken
from notification_core.modules.devices.service import DeviceTokenRegistry
from notification_core.modules.notifications.models import Notification
from notification_core.modules.notifications.service import NotificationDispatcher, NotificationRequest
from notification_core.modules.preferences.service import PreferenceResolver

from tests.support import NOW

EXPECTED_CADENCES = {
    "daily_study_reminders": "daily at 09:00",
    "daily_motivational_messages": "daily at 08:00",
    "study_plan_reminders": "daily at 09:30",
    "weekly_coaching_notes": "weekly on mon at 10:00",
    "streak_reminders": "every 3 days at 19:00",
    "pending_notifications_processor": "every 5 minutes",
    "achievement_checking": "every 6 hours",
    "token_maintenance": "every 6 hours",
    "stale_token_detection": "daily at 04:00",
    "notification_cleanup": "weekly on sun at 02:00",
    "weekly_maintenance": "weekly on sun at 03:00",
}


@pytest.fixture
def scheduler():
    instance = JobScheduler(timezone_name="UTC", clock=lambda: NOW)
    yield instance
    instance.shutdown()


@pytest.fixture
def jobs(session_factory, channels, clock):
    return NotificationJobs(session_factory, channels=channels, clock=clock)


def _opt_in(session, user, notification_type):
    PreferenceResolver(session, timezone_name="UTC", clock=lambda: NOW).update(
        user.id, notification_type, {"in_app_enabled": True, "push_enabled": True}
    )


def _notifications(session, **filters):
    session.expire_all()
    return session.query(Notification).filter_by(**filters).all()


def test_register_default_jobs(scheduler, jobs):
    names = register_default_jobs(scheduler, jobs)

    assert names == list(EXPECTED_CADENCES)
    statuses = {status.name: status for status in scheduler.status()}
    assert {name: s.cadence for name, s in statuses.items()} == EXPECTED_CADENCES
    assert {s.state for s in statuses.values()} == {"created"}


def test_register_default_jobs_can_start_them(scheduler, jobs):
    register_default_jobs(scheduler, jobs, start=True)

    assert scheduler.performance_metrics()["running_jobs"] == len(EXPECTED_CADENCES)


@pytest.mark.asyncio
async def test_streak_reminders_reach_only_opted_in_users(session, jobs, user_factory, channels):
    opted_in, silent = user_factory(), user_factory()
    _opt_in(session, opted_in, NotificationType.STREAK_REMINDER)

    result = await jobs.send_streak_reminders()

    assert (result.successful, result.failed) == (1, 0)
    [sent] = _notifications(session, notification_type=NotificationType.STREAK_REMINDER)
    assert sent.user_id == opted_in.id
    assert sent.status == NotificationStatus.SENT
    assert sent.title == "Keep your study streak alive"
    assert _notifications(session, user_id=silent.id) == []


@pytest.mark.asyncio
async def test_broadcast_without_opted_in_users_is_a_no_op(session, jobs, test_user):
    result = await jobs.send_daily_study_reminders()

    assert (result.successful, result.failed) == (0, 0)
    assert _notifications(session) == []


@pytest.mark.asyncio
async def test_motivational_message_rotates_by_date(session, jobs, test_user):
    _opt_in(session, test_user, NotificationType.MOTIVATIONAL_MESSAGE)

    await jobs.send_motivational_messages()

    title, content = MOTIVATIONAL_MESSAGES[NOW.date().toordinal() % len(MOTIVATIONAL_MESSAGES)]
    [message] = _notifications(session, user_id=test_user.id)
    assert (message.title, message.body) == (title, content)


@pytest.mark.asyncio
async def test_weekly_coaching_note_uses_iso_week(session, jobs, test_user):
    _opt_in(session, test_user, NotificationType.COACHING_NOTE)

    await jobs.send_weekly_coaching_notes()

    [note] = _notifications(session, user_id=test_user.id)
    assert note.title == "Week 10 coaching note"
    assert note.action_url == "/coaching/2026-W10"


@pytest.mark.asyncio
async def test_plan_reminders_and_pending_processor(session, jobs, test_user, clock, channels):
    _opt_in(session, test_user, NotificationType.PLAN_REMINDER)
    NotificationDispatcher(session, channels=channels, clock=clock).enqueue(
        test_user.id, "friend_request", "friend_request", {"requester_name": "Ada"}
    )

    plan = await jobs.send_study_plan_reminders()
    assert plan.successful == 1

    # the broadcast's own dispatch pass already delivered both intents
    summary = await jobs.process_pending_notifications()
    assert summary.processed == 0
    assert {n.status for n in _notifications(session, user_id=test_user.id)} == {NotificationStatus.SENT}


@pytest.mark.asyncio
async def test_maintain_tokens_deduplicates(session, jobs, test_user):
    registry = DeviceTokenRegistry(session, clock=lambda: NOW)
    registry.register(test_user.id, "first", "android")
    registry.register(test_user.id, "second", "android")

    assert await jobs.maintain_tokens() == 1
    assert await jobs.maintain_tokens(test_user.id) == 0


@pytest.mark.asyncio
async def test_one_time_notification_job_runs_once_and_removes_itself(
    session, scheduler, jobs, test_user
):
    name = schedule_one_time_notification(
        scheduler,
        jobs,
        test_user.id,
        NotificationType.SYSTEM_ANNOUNCEMENT,
        "system_announcement",
        {"announcement_title": "Maintenance", "announcement_content": "Back at 10:00"},
        NOW + timedelta(hours=2),
    )

    assert name.startswith(f"one_time_{test_user.id}_")
    assert scheduler.get(name).state is JobState.RUNNING
    [status] = scheduler.status()
    assert status.kind == "one_time"

    result = await scheduler.run_now(name)

    assert result.success is True
    assert name not in scheduler
    [sent] = _notifications(session, user_id=test_user.id)
    assert sent.title == "Maintenance"
    assert sent.status == NotificationStatus.SENT


@pytest.mark.asyncio
async def test_bulk_job_names_are_unique(session, scheduler, jobs, user_factory):
    users = [user_factory(), user_factory()]
    requests = [
        NotificationRequest(u.id, "system_announcement", "system_announcement",
                            {"announcement_title": "Hi", "announcement_content": "All"})
        for u in users
    ]

    first = schedule_bulk_notifications(scheduler, jobs, requests, NOW + timedelta(hours=1))
    second = schedule_bulk_notifications(scheduler, jobs, requests[:1], NOW + timedelta(hours=1))

    assert first != second
    assert first.startswith("bulk_")
    await scheduler.run_now(first)
    assert len(_notifications(session)) == 2
    assert second in scheduler


@pytest.mark.asyncio
async def test_weekly_maintenance_report(session, jobs, test_user, achievement_factory, channels):
    registry = DeviceTokenRegistry(session, clock=lambda: NOW)
    registry.register(test_user.id, "dup-1", "ios")
    registry.register(test_user.id, "dup-2", "ios")
    old_registry = DeviceTokenRegistry(session, clock=lambda: NOW - timedelta(days=90))
    gone = old_registry.register(test_user.id, "gone", "web")
    old_registry.disable_token(gone.id, "user_logout")
    NotificationDispatcher(session, channels=channels, clock=lambda: NOW - timedelta(days=120)).enqueue(
        test_user.id, "streak_reminder", "streak_warning", {"streak_type": "study"}
    )
    achievement_factory("Welcome", {"user_registration": {"required": True}})

    report = await jobs.run_weekly_maintenance()

    assert report.succeeded is True
    assert report.tokens_cleaned == 1
    assert report.tokens_disabled == 0
    assert report.tokens_deleted == 1
    assert report.notifications_purged == 1
    assert report.achievements_awarded == 1
    assert report.as_dict()["finished_at"] == NOW.isoformat()
    session.expire_all()
    assert session.query(DeviceToken).filter_by(token="gone").count() == 0
