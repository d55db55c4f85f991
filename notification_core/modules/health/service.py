"""Read-only system status and health score."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from notification_core.core.config import settings
from notification_core.core.scheduling.scheduler import JobScheduler
from notification_core.models.enums import NotificationStatus
from notification_core.modules.devices.repository import DeviceTokenRepository
from notification_core.modules.notifications.repository import NotificationRepository

logger = logging.getLogger("notification_core.health")

HEALTHY_THRESHOLD = 80
DEGRADED_THRESHOLD = 50


def compute_health_score(
    *,
    failed: int,
    total: int,
    not_running: int,
    jobs: int,
    active_tokens: int,
    bonus_scale: int = 100,
) -> float:
    """Start at 100, subtract failure (<=50) and downtime (<=30) penalties, add a token bonus (<=10)."""
    score = 100.0
    if total > 0:
        score -= min(50.0, 50.0 * failed / total)
    if jobs > 0:
        score -= 30.0 * not_running / jobs
    if bonus_scale > 0:
        score += min(10.0, active_tokens / bonus_scale)
    return round(max(0.0, min(100.0, score)), 2)


def health_label(score: float) -> str:
    if score >= HEALTHY_THRESHOLD:
        return "healthy"
    if score >= DEGRADED_THRESHOLD:
        return "degraded"
    return "unhealthy"


@dataclass(frozen=True)
class SystemStatus:
    generated_at: datetime
    health_score: float
    status: str
    tokens: Dict[str, Any] = field(default_factory=dict)
    notifications: Dict[str, int] = field(default_factory=dict)
    jobs: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "health_score": self.health_score,
            "status": self.status,
            "tokens": self.tokens,
            "notifications": self.notifications,
            "jobs": self.jobs,
        }


class HealthAggregator:
    def __init__(
        self,
        db: Session,
        scheduler: Optional[JobScheduler] = None,
        *,
        bonus_scale: Optional[int] = None,
        clock=None,
    ):
        self.tokens = DeviceTokenRepository(db)
        self.notifications = NotificationRepository(db)
        self.scheduler = scheduler
        self.bonus_scale = bonus_scale or settings.health_token_bonus_scale
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _notification_counts(self, now: datetime) -> Dict[str, int]:
        counts = self.notifications.status_counts(since=now - timedelta(hours=24))
        sent = sum(
            counts.get(status.value, 0)
            for status in (
                NotificationStatus.SENT,
                NotificationStatus.DELIVERED,
                NotificationStatus.READ,
            )
        )
        return {
            "sent": sent,
            "pending": counts.get(NotificationStatus.PENDING.value, 0),
            "failed": counts.get(NotificationStatus.FAILED.value, 0),
            "total": sum(counts.values()),
        }

    def _job_counts(self) -> Dict[str, int]:
        if self.scheduler is None:
            return {"total": 0, "running": 0, "stopped": 0}
        statuses = self.scheduler.status()
        running = sum(1 for job in statuses if job.running)
        return {"total": len(statuses), "running": running, "stopped": len(statuses) - running}

    def status(self) -> SystemStatus:
        now = self._clock()
        tokens = self.tokens.counts()
        notifications = self._notification_counts(now)
        jobs = self._job_counts()
        score = compute_health_score(
            failed=notifications["failed"],
            total=notifications["total"],
            not_running=jobs["stopped"],
            jobs=jobs["total"],
            active_tokens=int(tokens["active"]),
            bonus_scale=self.bonus_scale,
        )
        logger.debug("Computed health score %s", score)
        return SystemStatus(
            generated_at=now,
            health_score=score,
            status=health_label(score),
            tokens=tokens,
            notifications=notifications,
            jobs=jobs,
        )


__all__ = [
    "HealthAggregator",
    "SystemStatus",
    "compute_health_score",
    "health_label",
]
