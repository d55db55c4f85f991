"""Scheduled task bodies and default job registration.

Responsibilities:
- Provide the body of every default job; each run opens its own session and
  closes it when done.
- Register the default recurring job set on a `JobScheduler`.
- Schedule one-time and bulk notification jobs that remove themselves after
  firing.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from functools import partial
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from notification_core.core.config import settings
from notification_core.core.database import SessionLocal, session_scope
from notification_core.models.enums import NotificationType
from notification_core.modules.achievements.service import AchievementEvaluator, SweepResult
from notification_core.modules.devices.service import DeviceTokenRegistry, VerificationReport
from notification_core.modules.maintenance.service import MaintenanceReport, MaintenanceRunner
from notification_core.modules.notifications.service import (
    BulkEnqueueResult,
    DispatchSummary,
    NotificationDispatcher,
    NotificationRequest,
)

from .cadence import Cadence
from .scheduler import JobKind, JobScheduler

logger = logging.getLogger("notification_core.scheduler.tasks")

MOTIVATIONAL_MESSAGES = (
    ("Daily motivation", "Small steps every day add up to big results."),
    ("Keep going", "Consistency beats intensity. Show up for a few minutes today."),
    ("You have got this", "Every question you solve today makes tomorrow easier."),
    ("Progress check", "Look how far you have come. One more session keeps the momentum."),
)


class NotificationJobs:
    """Task bodies for the default job set."""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        *,
        channels=None,
        verifier=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.channels = channels
        self.verifier = verifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def session(self):
        return session_scope(self.session_factory)

    def registry(self, db) -> DeviceTokenRegistry:
        return DeviceTokenRegistry(db, verifier=self.verifier, clock=self._clock)

    def dispatcher(self, db, registry: Optional[DeviceTokenRegistry] = None) -> NotificationDispatcher:
        return NotificationDispatcher(
            db,
            registry=registry or self.registry(db),
            channels=self.channels,
            clock=self._clock,
        )

    def evaluator(self, db, dispatcher: Optional[NotificationDispatcher] = None) -> AchievementEvaluator:
        return AchievementEvaluator(
            db, dispatcher=dispatcher or self.dispatcher(db), clock=self._clock
        )

    # ---------------------------------------------------------------- sending
    async def send_notifications(self, requests: Iterable[NotificationRequest]) -> BulkEnqueueResult:
        """Enqueue ``requests`` and run one dispatch pass right away."""
        with self.session() as db:
            dispatcher = self.dispatcher(db)
            result = dispatcher.enqueue_bulk(requests)
            if result.successful:
                await dispatcher.process_pending()
            return result

    async def _broadcast(
        self,
        notification_type: NotificationType,
        template_name: str,
        variables: Mapping[str, Any],
    ) -> BulkEnqueueResult:
        with self.session() as db:
            dispatcher = self.dispatcher(db)
            user_ids = dispatcher.preferences.users_with_type_enabled(notification_type)
            if not user_ids:
                logger.info("No users opted in to %s notifications", notification_type.value)
                return BulkEnqueueResult()
            logger.info("Sending %s %s notifications", len(user_ids), notification_type.value)
            result = dispatcher.enqueue_bulk(
                NotificationRequest(user_id, notification_type, template_name, variables)
                for user_id in user_ids
            )
            await dispatcher.process_pending()
            return result

    async def send_daily_study_reminders(self) -> BulkEnqueueResult:
        return await self._broadcast(
            NotificationType.STUDY_REMINDER,
            "daily_study_reminder",
            {"reminder_title": "Time to study"},
        )

    async def send_motivational_messages(self) -> BulkEnqueueResult:
        today = self._clock().date()
        title, content = MOTIVATIONAL_MESSAGES[today.toordinal() % len(MOTIVATIONAL_MESSAGES)]
        return await self._broadcast(
            NotificationType.MOTIVATIONAL_MESSAGE,
            "new_motivational_message",
            {"message_title": title, "message_content": content},
        )

    async def send_study_plan_reminders(self) -> BulkEnqueueResult:
        return await self._broadcast(
            NotificationType.PLAN_REMINDER,
            "study_plan_reminder",
            {"activity_title": "Today's study plan"},
        )

    async def send_weekly_coaching_notes(self) -> BulkEnqueueResult:
        year, week, _ = self._clock().isocalendar()
        return await self._broadcast(
            NotificationType.COACHING_NOTE,
            "new_coaching_note",
            {
                "note_title": f"Week {week} coaching note",
                "week_number": week,
                "note_id": f"{year}-W{week:02d}",
            },
        )

    async def send_streak_reminders(self) -> BulkEnqueueResult:
        return await self._broadcast(
            NotificationType.STREAK_REMINDER, "streak_warning", {"streak_type": "study"}
        )

    # ------------------------------------------------------------ processing
    async def process_pending_notifications(self) -> DispatchSummary:
        with self.session() as db:
            return await self.dispatcher(db).process_pending()

    async def check_achievements(
        self, user_ids: Optional[Sequence[int]] = None, limit: Optional[int] = None
    ) -> SweepResult:
        with self.session() as db:
            evaluator = self.evaluator(db)
            if user_ids is not None:
                return await evaluator.check_users(user_ids)
            return await evaluator.check_all_users(limit=limit or settings.achievement_sweep_limit)

    # ----------------------------------------------------------- maintenance
    async def maintain_tokens(self, user_id: Optional[int] = None) -> int:
        with self.session() as db:
            return self.registry(db).cleanup_duplicate_tokens(user_id)

    async def detect_stale_tokens(self) -> VerificationReport:
        with self.session() as db:
            return await self.registry(db).detect_and_verify()

    async def cleanup_notifications(self) -> List[int]:
        with self.session() as db:
            return self.dispatcher(db).cleanup_old_notifications()

    async def run_weekly_maintenance(self) -> MaintenanceReport:
        with self.session() as db:
            registry = self.registry(db)
            dispatcher = self.dispatcher(db, registry)
            runner = MaintenanceRunner(
                db,
                registry=registry,
                dispatcher=dispatcher,
                evaluator=self.evaluator(db, dispatcher),
                clock=self._clock,
            )
            return await runner.run_weekly_maintenance()


DEFAULT_JOBS = (
    ("daily_study_reminders", "send_daily_study_reminders", Cadence.daily(time(9, 0))),
    ("daily_motivational_messages", "send_motivational_messages", Cadence.daily(time(8, 0))),
    ("study_plan_reminders", "send_study_plan_reminders", Cadence.daily(time(9, 30))),
    ("weekly_coaching_notes", "send_weekly_coaching_notes", Cadence.weekly("mon", time(10, 0))),
    ("streak_reminders", "send_streak_reminders", Cadence.every_n_days(3, time(19, 0))),
    ("pending_notifications_processor", "process_pending_notifications", Cadence.every(minutes=5)),
    ("achievement_checking", "check_achievements", Cadence.every(hours=6)),
    ("token_maintenance", "maintain_tokens", Cadence.every(hours=6)),
    ("stale_token_detection", "detect_stale_tokens", Cadence.daily(time(4, 0))),
    ("notification_cleanup", "cleanup_notifications", Cadence.weekly("sun", time(2, 0))),
    ("weekly_maintenance", "run_weekly_maintenance", Cadence.weekly("sun", time(3, 0))),
)


def register_default_jobs(
    scheduler: JobScheduler, jobs: NotificationJobs, *, start: bool = False
) -> List[str]:
    names = []
    for name, attribute, cadence in DEFAULT_JOBS:
        scheduler.register(name, getattr(jobs, attribute), cadence, start=start)
        names.append(name)
    logger.info("Registered %s default jobs", len(names))
    return names


def _unique_name(scheduler: JobScheduler, prefix: str, when: datetime) -> str:
    stamp = int(when.timestamp() * 1000)
    name = f"{prefix}_{stamp}"
    while name in scheduler:
        stamp += 1
        name = f"{prefix}_{stamp}"
    return name


def schedule_one_time_notification(
    scheduler: JobScheduler,
    jobs: NotificationJobs,
    user_id: int,
    notification_type,
    template_name: str,
    variables: Optional[Mapping[str, Any]],
    run_at: datetime,
) -> str:
    request = NotificationRequest(user_id, notification_type, template_name, dict(variables or {}))
    name = _unique_name(scheduler, f"one_time_{user_id}", datetime.now(timezone.utc))
    scheduler.register(
        name,
        partial(jobs.send_notifications, [request]),
        Cadence.once(run_at),
        kind=JobKind.ONE_TIME,
        start=True,
    )
    logger.info("One-time notification for user %s scheduled at %s", user_id, run_at)
    return name


def schedule_bulk_notifications(
    scheduler: JobScheduler,
    jobs: NotificationJobs,
    requests: Sequence[NotificationRequest],
    run_at: datetime,
) -> str:
    name = _unique_name(scheduler, "bulk", datetime.now(timezone.utc))
    scheduler.register(
        name,
        partial(jobs.send_notifications, list(requests)),
        Cadence.once(run_at),
        kind=JobKind.BULK,
        start=True,
    )
    logger.info("Bulk job %s with %s notifications scheduled at %s", name, len(requests), run_at)
    return name


__all__ = [
    "DEFAULT_JOBS",
    "MOTIVATIONAL_MESSAGES",
    "NotificationJobs",
    "register_default_jobs",
    "schedule_bulk_notifications",
    "schedule_one_time_notification",
]
