"""Data-access helpers for notification intents.

Status changes are written as guarded updates (``WHERE status IN (...)``) so two
overlapping dispatch passes, or a dispatch pass and a read acknowledgement, can
never move an intent backwards.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from notification_core.models.enums import (
    DeliveryChannelName,
    NotificationStatus,
    NotificationType,
)

from .models import SENT_STATUSES, Notification, NotificationDeliveryLog


class NotificationRepository:
    """Encapsulate notification-specific database operations."""

    def __init__(self, db: Session):
        self.db = db

    # ----------------------------------------------------------------- queries
    def get(self, notification_id: int) -> Optional[Notification]:
        return self.db.get(Notification, notification_id)

    def pending(
        self, limit: int, now: datetime, claim_ttl_seconds: int
    ) -> List[Notification]:
        """Unclaimed pending intents; never-evaluated first, then least recently deferred."""
        expired = now - timedelta(seconds=claim_ttl_seconds)
        return (
            self.db.query(Notification)
            .filter(
                Notification.status == NotificationStatus.PENDING,
                or_(Notification.claimed_at.is_(None), Notification.claimed_at < expired),
            )
            .order_by(
                Notification.last_evaluated_at.asc().nulls_first(),
                Notification.created_at.asc(),
                Notification.id.asc(),
            )
            .limit(limit)
            .all()
        )

    def last_sent_at(
        self, user_id: int, notification_type: NotificationType
    ) -> Optional[datetime]:
        return (
            self.db.query(func.max(Notification.sent_at))
            .filter(
                Notification.user_id == user_id,
                Notification.notification_type == notification_type,
                Notification.status.in_(SENT_STATUSES),
            )
            .scalar()
        )

    def status_counts(self, since: Optional[datetime] = None) -> Dict[str, int]:
        query = self.db.query(Notification.status, func.count(Notification.id))
        if since is not None:
            query = query.filter(Notification.created_at >= since)
        counts = {status.value: 0 for status in NotificationStatus}
        for status, count in query.group_by(Notification.status).all():
            counts[status.value] = int(count)
        return counts

    # --------------------------------------------------------------- mutations
    def create(self, **fields: Any) -> Notification:
        notification = Notification(status=NotificationStatus.PENDING, **fields)
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def _transition(
        self,
        notification_id: int,
        allowed_from: Sequence[NotificationStatus],
        values: Dict[Any, Any],
        user_id: Optional[int] = None,
    ) -> bool:
        query = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.status.in_(list(allowed_from)),
        )
        if user_id is not None:
            query = query.filter(Notification.user_id == user_id)
        updated = query.update(values, synchronize_session=False)
        self.db.commit()
        return bool(updated)

    def claim(
        self, notification_id: int, claim_id: str, now: datetime, claim_ttl_seconds: int
    ) -> bool:
        """Take the intent for one pass; fails if it left `pending` or another pass holds it."""
        expired = now - timedelta(seconds=claim_ttl_seconds)
        updated = (
            self.db.query(Notification)
            .filter(
                Notification.id == notification_id,
                Notification.status == NotificationStatus.PENDING,
                or_(Notification.claimed_at.is_(None), Notification.claimed_at < expired),
            )
            .update(
                {Notification.claim_id: claim_id, Notification.claimed_at: now},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return bool(updated)

    def release(self, notification_id: int, claim_id: str) -> None:
        (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.claim_id == claim_id)
            .update(
                {Notification.claim_id: None, Notification.claimed_at: None},
                synchronize_session=False,
            )
        )
        self.db.commit()

    def mark_deferred(self, notification_id: int, when: datetime) -> bool:
        return self._transition(
            notification_id,
            [NotificationStatus.PENDING],
            {Notification.last_evaluated_at: when},
        )

    def mark_sent(self, notification_id: int, when: datetime) -> bool:
        return self._transition(
            notification_id,
            [NotificationStatus.PENDING],
            {
                Notification.status: NotificationStatus.SENT,
                Notification.sent_at: when,
                Notification.attempts: Notification.attempts + 1,
                Notification.last_error: None,
            },
        )

    def mark_failed(self, notification_id: int, error: str) -> bool:
        return self._transition(
            notification_id,
            [NotificationStatus.PENDING],
            {
                Notification.status: NotificationStatus.FAILED,
                Notification.attempts: Notification.attempts + 1,
                Notification.last_error: error[:500],
            },
        )

    def mark_delivered(self, notification_id: int, when: datetime) -> bool:
        return self._transition(
            notification_id,
            [NotificationStatus.SENT],
            {
                Notification.status: NotificationStatus.DELIVERED,
                Notification.delivered_at: when,
            },
        )

    def mark_read(self, notification_id: int, user_id: int, when: datetime) -> bool:
        return self._transition(
            notification_id,
            [NotificationStatus.SENT, NotificationStatus.DELIVERED],
            {Notification.status: NotificationStatus.READ, Notification.read_at: when},
            user_id=user_id,
        )

    def add_delivery_logs(
        self,
        notification_id: int,
        outcomes: Iterable[tuple],
        when: datetime,
    ) -> None:
        for channel, success, error in outcomes:
            self.db.add(
                NotificationDeliveryLog(
                    notification_id=notification_id,
                    channel=DeliveryChannelName(channel),
                    success=success,
                    error_message=(error or None) and str(error)[:500],
                    attempted_at=when,
                )
            )
        self.db.commit()

    def delete_older_than(self, cutoff: datetime) -> List[int]:
        """Remove intents created before ``cutoff`` regardless of status."""
        ids = [
            row.id
            for row in self.db.query(Notification.id)
            .filter(Notification.created_at < cutoff)
            .all()
        ]
        if ids:
            (
                self.db.query(NotificationDeliveryLog)
                .filter(NotificationDeliveryLog.notification_id.in_(ids))
                .delete(synchronize_session=False)
            )
            (
                self.db.query(Notification)
                .filter(Notification.id.in_(ids))
                .delete(synchronize_session=False)
            )
        self.db.commit()
        return ids


__all__ = ["NotificationRepository"]
