"""Achievement evaluation.

Responsibilities:
- Evaluate every unmet rule against a fresh statistics snapshot.
- Award each newly satisfied rule exactly once per user (insert-if-absent) and
  enqueue an ``achievement_unlock`` intent per award.
- Sweep batches of users, isolating per-user failures.
- Report per-user progress and global award statistics.

Two evaluations racing for the same user converge on a single award per rule:
the loser of the insert sees the existing row and neither counts nor notifies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from notification_core.core.exceptions import BatchItemError
from notification_core.models.enums import NotificationType
from notification_core.modules.notifications.service import NotificationDispatcher
from notification_core.modules.users.repository import UserRepository
from notification_core.modules.users.statistics import (
    SqlUserStatisticsProvider,
    UserStatisticsProvider,
)

from .repository import AchievementRepository
from .rules import requirement_progress, requirements_met

logger = logging.getLogger("notification_core.achievements")

UNLOCK_TEMPLATE = "achievement_unlocked"


@dataclass(frozen=True)
class AwardedAchievement:
    id: int
    name: str
    description: Optional[str] = None
    points: int = 0
    notification_id: Optional[int] = None


@dataclass
class AchievementCheckResult:
    user_id: int
    newly_awarded: List[AwardedAchievement] = field(default_factory=list)


@dataclass
class SweepResult:
    results: List[Dict[str, Any]] = field(default_factory=list)
    successful_checks: int = 0
    failed_checks: int = 0
    total_new_achievements: int = 0

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "totalUsers": len(self.results),
            "successfulChecks": self.successful_checks,
            "failedChecks": self.failed_checks,
            "totalNewAchievements": self.total_new_achievements,
        }


class AchievementEvaluator:
    def __init__(
        self,
        db: Session,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        statistics: Optional[UserStatisticsProvider] = None,
        users: Optional[UserRepository] = None,
        clock=None,
    ):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.db = db
        self.repository = AchievementRepository(db)
        self.dispatcher = dispatcher or NotificationDispatcher(db, clock=self._clock)
        self.statistics = statistics or SqlUserStatisticsProvider(db, clock=self._clock)
        self.users = users or UserRepository(db)

    async def check_user(self, user_id: int) -> AchievementCheckResult:
        snapshot = (await self.statistics.get_snapshot(user_id)).as_dict()
        already = self.repository.awarded_ids(user_id)
        result = AchievementCheckResult(user_id=user_id)

        for rule in self.repository.active_rules():
            if rule.id in already or not requirements_met(rule.requirements, snapshot):
                continue
            if not self.repository.award_if_absent(user_id, rule.id, self._clock()):
                continue

            notification_id = None
            try:
                notification = self.dispatcher.enqueue(
                    user_id,
                    NotificationType.ACHIEVEMENT_UNLOCK,
                    UNLOCK_TEMPLATE,
                    {
                        "achievement_id": rule.id,
                        "achievement_name": rule.name,
                        "achievement_description": rule.description or "",
                    },
                    metadata={"achievement_id": rule.id, "points": rule.points},
                )
                notification_id = notification.id
            except Exception as exc:
                # The award stands; only the announcement is lost.
                self.db.rollback()
                logger.error(
                    "Awarded achievement %s to user %s but could not enqueue notification: %s",
                    rule.id,
                    user_id,
                    exc,
                )
            result.newly_awarded.append(
                AwardedAchievement(
                    id=rule.id,
                    name=rule.name,
                    description=rule.description,
                    points=rule.points or 0,
                    notification_id=notification_id,
                )
            )

        if result.newly_awarded:
            logger.info(
                "User %s earned %s",
                user_id,
                [award.name for award in result.newly_awarded],
            )
        return result

    async def check_users(self, user_ids: Iterable[int]) -> SweepResult:
        sweep = SweepResult()
        for user_id in user_ids:
            try:
                outcome = await self.check_user(user_id)
            except Exception as exc:
                self.db.rollback()
                error = BatchItemError(user_id, exc)
                logger.warning("Achievement check failed: %s", error.message)
                sweep.failed_checks += 1
                sweep.results.append({"userId": user_id, "success": False, "error": str(exc)})
                continue
            sweep.successful_checks += 1
            sweep.total_new_achievements += len(outcome.newly_awarded)
            sweep.results.append(
                {
                    "userId": user_id,
                    "success": True,
                    "newAchievements": len(outcome.newly_awarded),
                    "achievements": [award.name for award in outcome.newly_awarded],
                }
            )
        logger.info("Achievement sweep summary: %s", sweep.summary)
        return sweep

    async def check_all_users(self, limit: int = 100) -> SweepResult:
        return await self.check_users(self.users.active_user_ids(limit=limit))

    async def trigger_for_action(self, user_id: int, action_type: str) -> AchievementCheckResult:
        logger.info("Checking achievements for user %s after %s", user_id, action_type)
        return await self.check_user(user_id)

    async def get_user_progress(self, user_id: int) -> List[Dict[str, Any]]:
        snapshot = (await self.statistics.get_snapshot(user_id)).as_dict()
        earned = self.repository.awarded_ids(user_id)
        progress = []
        for rule in self.repository.active_rules():
            detail = requirement_progress(rule.requirements, snapshot)
            progress.append(
                {
                    "achievement_id": rule.id,
                    "name": rule.name,
                    "earned": rule.id in earned,
                    "progress": 100 if rule.id in earned else detail["overall"],
                    "requirements": detail["requirements"],
                }
            )
        return progress

    def get_achievement_stats(self) -> Dict[str, Any]:
        return self.repository.stats()


__all__ = [
    "AchievementCheckResult",
    "AchievementEvaluator",
    "AwardedAchievement",
    "SweepResult",
]
