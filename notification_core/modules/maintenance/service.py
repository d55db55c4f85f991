"""Weekly maintenance sweep.

Runs the housekeeping steps in order: duplicate token cleanup, stale token verification,
old token purge, notification retention and an achievement sweep. A failing step
is recorded in the report and the next step still runs.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from notification_core.core.config import settings
from notification_core.modules.achievements.service import AchievementEvaluator
from notification_core.modules.devices.service import DeviceTokenRegistry
from notification_core.modules.notifications.service import NotificationDispatcher

logger = logging.getLogger("notification_core.maintenance")


@dataclass
class MaintenanceReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    tokens_cleaned: int = 0
    tokens_disabled: int = 0
    tokens_deleted: int = 0
    notifications_purged: int = 0
    achievements_awarded: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def as_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "tokens_cleaned": self.tokens_cleaned,
            "tokens_disabled": self.tokens_disabled,
            "tokens_deleted": self.tokens_deleted,
            "notifications_purged": self.notifications_purged,
            "achievements_awarded": self.achievements_awarded,
            "errors": list(self.errors),
        }


class MaintenanceRunner:
    def __init__(
        self,
        db: Session,
        *,
        registry: Optional[DeviceTokenRegistry] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        evaluator: Optional[AchievementEvaluator] = None,
        sweep_limit: Optional[int] = None,
        clock=None,
    ):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.registry = registry or DeviceTokenRegistry(db, clock=self._clock)
        self.dispatcher = dispatcher or NotificationDispatcher(
            db, registry=self.registry, clock=self._clock
        )
        self.evaluator = evaluator or AchievementEvaluator(
            db, dispatcher=self.dispatcher, clock=self._clock
        )
        self.sweep_limit = sweep_limit or settings.weekly_achievement_sweep_limit

    async def _step(self, report: MaintenanceReport, name: str, action: Callable[[], Any]):
        try:
            outcome = action()
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome
        except Exception as exc:
            self.db.rollback()
            logger.error("Maintenance step %s failed: %s", name, exc)
            report.errors.append(f"{name}: {exc}")
            return None

    async def run_weekly_maintenance(self) -> MaintenanceReport:
        report = MaintenanceReport(started_at=self._clock())
        logger.info("Starting weekly maintenance")

        cleaned = await self._step(report, "duplicate_cleanup", self.registry.cleanup_duplicate_tokens)
        if cleaned is not None:
            report.tokens_cleaned = cleaned

        verification = await self._step(report, "stale_verify", self.registry.detect_and_verify)
        if verification is not None:
            report.tokens_disabled = verification.disabled
            report.errors.extend(f"stale_verify: {error}" for error in verification.errors)

        purged = await self._step(report, "token_purge", self.registry.purge_old)
        if purged is not None:
            report.tokens_deleted = len(purged)

        removed = await self._step(
            report, "notification_retention", self.dispatcher.cleanup_old_notifications
        )
        if removed is not None:
            report.notifications_purged = len(removed)

        sweep = await self._step(
            report,
            "achievement_sweep",
            lambda: self.evaluator.check_all_users(limit=self.sweep_limit),
        )
        if sweep is not None:
            report.achievements_awarded = sweep.total_new_achievements

        report.finished_at = self._clock()
        logger.info("Weekly maintenance finished: %s", report.as_dict())
        return report


__all__ = ["MaintenanceReport", "MaintenanceRunner"]
