"""Operator-facing operations over the notification core.

Every method returns plain structured records (dataclasses or dicts) so HTTP
handlers stay thin and tests can call the operations directly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from notification_core.core.exceptions import ValidationError
from notification_core.core.scheduling.scheduler import JobRunResult, JobScheduler
from notification_core.core.scheduling.tasks import (
    NotificationJobs,
    schedule_bulk_notifications,
    schedule_one_time_notification,
)
from notification_core.models.enums import NotificationType
from notification_core.modules.health.service import HealthAggregator, SystemStatus
from notification_core.modules.notifications.service import NotificationRequest
from notification_core.modules.users.repository import UserRepository

logger = logging.getLogger("notification_core.operations")

ANNOUNCEMENT_TEMPLATE = "system_announcement"
TargetUsers = Union[str, Sequence[int]]


class NotificationOperations:
    def __init__(self, scheduler: JobScheduler, jobs: NotificationJobs):
        self.scheduler = scheduler
        self.jobs = jobs

    async def trigger_achievement_check(
        self, user_ids: Optional[Sequence[int]] = None
    ) -> Dict[str, Any]:
        logger.info(
            "Manual achievement check for %s",
            f"{len(user_ids)} users" if user_ids is not None else "all users",
        )
        sweep = await self.jobs.check_achievements(
            list(user_ids) if user_ids is not None else None
        )
        return {"summary": sweep.summary, "results": sweep.results}

    async def trigger_device_token_cleanup(self, user_id: Optional[int] = None) -> Dict[str, Any]:
        cleaned = await self.jobs.maintain_tokens(user_id)
        logger.info("Manual token cleanup deactivated %s duplicates", cleaned)
        return {"user_id": user_id, "tokens_cleaned": cleaned}

    def get_system_status(self) -> SystemStatus:
        with self.jobs.session() as db:
            return HealthAggregator(db, self.scheduler).status()

    def get_job_status(self) -> Dict[str, Any]:
        return {
            "jobs": [status.as_dict() for status in self.scheduler.status()],
            "metrics": self.scheduler.performance_metrics(),
        }

    async def run_job_now(self, name: str) -> JobRunResult:
        return await self.scheduler.run_now(name)

    def next_execution_times(self, name: str, count: int = 5) -> List[datetime]:
        return self.scheduler.next_execution_times(name, count)

    async def send_emergency_notification(
        self, title: str, body: str, target_users: TargetUsers = "all"
    ) -> Dict[str, Any]:
        if not title or not title.strip():
            raise ValidationError("Announcement title must not be empty", field="title")
        if not body or not body.strip():
            raise ValidationError("Announcement body must not be empty", field="body")

        if target_users == "all":
            with self.jobs.session() as db:
                user_ids = UserRepository(db).active_user_ids()
        elif isinstance(target_users, (list, tuple)) and not isinstance(target_users, str):
            user_ids = list(dict.fromkeys(int(user_id) for user_id in target_users))
        else:
            raise ValidationError(
                "target_users must be 'all' or a list of user ids", field="target_users"
            )

        logger.warning("Sending emergency notification to %s users", len(user_ids))
        variables = {"announcement_title": title, "announcement_content": body}
        result = await self.jobs.send_notifications(
            NotificationRequest(
                user_id, NotificationType.SYSTEM_ANNOUNCEMENT, ANNOUNCEMENT_TEMPLATE, variables
            )
            for user_id in user_ids
        )
        return {
            "target_users": len(user_ids),
            "successful": result.successful,
            "failed": result.failed,
            "results": result.results,
        }

    def schedule_notification(
        self,
        user_id: int,
        notification_type,
        template_name: str,
        variables: Optional[Dict[str, Any]],
        run_at: datetime,
    ) -> str:
        return schedule_one_time_notification(
            self.scheduler, self.jobs, user_id, notification_type, template_name, variables, run_at
        )

    def schedule_bulk(self, requests: Sequence[NotificationRequest], run_at: datetime) -> str:
        return schedule_bulk_notifications(self.scheduler, self.jobs, requests, run_at)


__all__ = ["NotificationOperations"]
