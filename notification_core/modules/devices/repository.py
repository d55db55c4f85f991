"""Data-access helpers for device tokens."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from .models import DeviceToken


def _last_seen():
    """Most recent sign of life: last delivery, or registration when never used."""
    return func.coalesce(DeviceToken.last_used_at, DeviceToken.registered_at)


class DeviceTokenRepository:
    """Encapsulate device-token database operations.

    Mutations that flip ``is_active`` are guarded on the current value so that
    overlapping duplicate-cleanup and stale-verification runs commute.
    """

    def __init__(self, db: Session):
        self.db = db

    # ----------------------------------------------------------------- queries
    def get(self, user_id: int, token: str) -> Optional[DeviceToken]:
        return (
            self.db.query(DeviceToken)
            .filter(DeviceToken.user_id == user_id, DeviceToken.token == token)
            .first()
        )

    def active_for_user(self, user_id: int) -> List[DeviceToken]:
        return (
            self.db.query(DeviceToken)
            .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
            .order_by(DeviceToken.id)
            .all()
        )

    def users_with_active_tokens(self) -> List[int]:
        rows = (
            self.db.query(DeviceToken.user_id)
            .filter(DeviceToken.is_active.is_(True))
            .distinct()
            .all()
        )
        return [row.user_id for row in rows]

    def stale(self, cutoff: datetime, limit: Optional[int] = None) -> List[DeviceToken]:
        query = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.is_active.is_(True), _last_seen() < cutoff)
            .order_by(_last_seen().asc(), DeviceToken.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def counts(self) -> Dict[str, object]:
        rows = (
            self.db.query(
                DeviceToken.platform,
                func.count(DeviceToken.id),
                func.sum(case((DeviceToken.is_active.is_(True), 1), else_=0)),
            )
            .group_by(DeviceToken.platform)
            .all()
        )
        by_platform = {
            platform.value: {"total": int(total), "active": int(active or 0)}
            for platform, total, active in rows
        }
        return {
            "total": sum(item["total"] for item in by_platform.values()),
            "active": sum(item["active"] for item in by_platform.values()),
            "by_platform": by_platform,
        }

    # --------------------------------------------------------------- mutations
    def add(self, token: DeviceToken) -> DeviceToken:
        self.db.add(token)
        self.db.commit()
        self.db.refresh(token)
        return token

    def save(self, token: DeviceToken) -> DeviceToken:
        self.db.commit()
        self.db.refresh(token)
        return token

    def rollback(self) -> None:
        self.db.rollback()

    def deactivate(self, token_id: int, reason: str, when: datetime) -> bool:
        """Flip an active token to inactive; returns False when another run already did."""
        updated = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.id == token_id, DeviceToken.is_active.is_(True))
            .update(
                {
                    DeviceToken.is_active: False,
                    DeviceToken.disabled_at: when,
                    DeviceToken.disabled_reason: reason,
                    DeviceToken.updated_at: when,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return bool(updated)

    def deactivate_for_user(self, user_id: int, reason: str, when: datetime) -> int:
        updated = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
            .update(
                {
                    DeviceToken.is_active: False,
                    DeviceToken.disabled_at: when,
                    DeviceToken.disabled_reason: reason,
                    DeviceToken.updated_at: when,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return int(updated or 0)

    def touch_last_used(self, token_id: int, when: datetime) -> bool:
        """Advance ``last_used_at``; never moves it backwards."""
        updated = (
            self.db.query(DeviceToken)
            .filter(
                DeviceToken.id == token_id,
                or_(DeviceToken.last_used_at.is_(None), DeviceToken.last_used_at < when),
            )
            .update(
                {DeviceToken.last_used_at: when, DeviceToken.updated_at: when},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return bool(updated)

    def purge_inactive(self, cutoff: datetime) -> List[dict]:
        """Delete inactive tokens disabled before ``cutoff`` and return what was removed."""
        disabled_since = func.coalesce(
            DeviceToken.disabled_at, DeviceToken.updated_at, DeviceToken.registered_at
        )
        doomed = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.is_active.is_(False), disabled_since < cutoff)
            .all()
        )
        removed = [token.to_dict() for token in doomed]
        if doomed:
            (
                self.db.query(DeviceToken)
                .filter(
                    DeviceToken.id.in_([token["id"] for token in removed]),
                    DeviceToken.is_active.is_(False),
                )
                .delete(synchronize_session=False)
            )
        self.db.commit()
        return removed


__all__ = ["DeviceTokenRepository"]
