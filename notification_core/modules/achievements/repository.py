"""Data-access helpers for achievement rules and awards."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Achievement, UserAchievement


class AchievementRepository:
    """Read rules, read/write awards. Awards are insert-if-absent."""

    def __init__(self, db: Session):
        self.db = db

    def active_rules(self) -> List[Achievement]:
        return (
            self.db.query(Achievement)
            .filter(Achievement.is_active.is_(True))
            .order_by(Achievement.id)
            .all()
        )

    def awarded_ids(self, user_id: int) -> Set[int]:
        rows = (
            self.db.query(UserAchievement.achievement_id)
            .filter(UserAchievement.user_id == user_id)
            .all()
        )
        return {row.achievement_id for row in rows}

    def award_if_absent(self, user_id: int, achievement_id: int, when: datetime) -> bool:
        """Insert the award; False when it already existed (a concurrent run won)."""
        exists = (
            self.db.query(UserAchievement.id)
            .filter(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
            .first()
        )
        if exists:
            return False
        self.db.add(
            UserAchievement(user_id=user_id, achievement_id=achievement_id, earned_at=when)
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def stats(self) -> Dict[str, Any]:
        total_rules = self.db.query(func.count(Achievement.id)).scalar() or 0
        total_awarded = self.db.query(func.count(UserAchievement.id)).scalar() or 0
        unique_users = (
            self.db.query(func.count(func.distinct(UserAchievement.user_id))).scalar() or 0
        )
        distribution = (
            self.db.query(Achievement.name, func.count(UserAchievement.id))
            .outerjoin(UserAchievement, UserAchievement.achievement_id == Achievement.id)
            .group_by(Achievement.id, Achievement.name)
            .order_by(Achievement.id)
            .all()
        )
        return {
            "total_achievements": int(total_rules),
            "total_awarded": int(total_awarded),
            "unique_users_with_achievements": int(unique_users),
            "average_per_user": round(total_awarded / unique_users, 2) if unique_users else 0.0,
            "distribution": {name: int(count) for name, count in distribution},
        }


__all__ = ["AchievementRepository"]
