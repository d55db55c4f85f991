"""Statistics snapshots consumed by the achievement evaluator.

Responsibilities:
- Define the read-only `UserStatisticsProvider` contract.
- Compute a `UserStatistics` snapshot from the user and study-session tables.
- Derive current/longest study streaks from distinct study days.
"""

from __future__ import annotations

import abc
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import StudySession, User


@dataclass(frozen=True)
class UserStatistics:
    user_id: int
    total_duels: int = 0
    duels_won: int = 0
    duels_lost: int = 0
    duel_win_rate: float = 0.0
    study_sessions: int = 0
    distinct_study_days: int = 0
    total_study_time_minutes: int = 0
    current_study_streak: int = 0
    longest_study_streak: int = 0
    courses_studied: int = 0
    courses_completed: int = 0
    account_age_days: int = 0
    user_registration: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UserStatisticsProvider(abc.ABC):
    """Read-only snapshot source for a user's study/duel/streak metrics."""

    @abc.abstractmethod
    async def get_snapshot(self, user_id: int) -> UserStatistics:
        raise NotImplementedError


def calculate_study_streaks(
    study_days: Iterable[date], today: Optional[date] = None
) -> Tuple[int, int]:
    """Return ``(current, longest)`` runs of consecutive study days.

    The current streak only counts when the latest study day is today or
    yesterday; a gap of two or more days resets it to zero.
    """
    days = sorted(set(study_days))
    if not days:
        return 0, 0
    today = today or datetime.now(timezone.utc).date()

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    if (today - days[-1]).days > 1:
        return 0, longest

    current_streak = 1
    for index in range(len(days) - 1, 0, -1):
        if days[index] - days[index - 1] == timedelta(days=1):
            current_streak += 1
        else:
            break
    return current_streak, longest


class SqlUserStatisticsProvider(UserStatisticsProvider):
    """Statistics computed from the `users` and `study_sessions` tables."""

    def __init__(self, db: Session, *, clock=None):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_snapshot(self, user_id: int) -> UserStatistics:
        user = self.db.get(User, user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")

        now = self._clock()
        totals = (
            self.db.query(
                func.count(StudySession.id),
                func.coalesce(func.sum(StudySession.duration_minutes), 0),
                func.count(func.distinct(StudySession.course_id)),
            )
            .filter(StudySession.user_id == user_id)
            .one()
        )
        completed_courses = (
            self.db.query(func.count(func.distinct(StudySession.course_id)))
            .filter(
                StudySession.user_id == user_id,
                StudySession.completed.is_(True),
                StudySession.course_id.isnot(None),
            )
            .scalar()
        )
        study_days = [
            row.study_date
            for row in self.db.query(StudySession.study_date)
            .filter(StudySession.user_id == user_id)
            .distinct()
            .all()
        ]
        current, longest = calculate_study_streaks(study_days, today=now.date())

        total_duels = user.total_duels or 0
        win_rate = round((user.duels_won or 0) * 100.0 / total_duels, 2) if total_duels else 0.0
        created_at = user.created_at or now

        return UserStatistics(
            user_id=user_id,
            total_duels=total_duels,
            duels_won=user.duels_won or 0,
            duels_lost=user.duels_lost or 0,
            duel_win_rate=win_rate,
            study_sessions=int(totals[0] or 0),
            distinct_study_days=len(study_days),
            total_study_time_minutes=int(totals[1] or 0),
            current_study_streak=current,
            longest_study_streak=longest,
            courses_studied=int(totals[2] or 0),
            courses_completed=int(completed_courses or 0),
            account_age_days=max(0, (now - created_at).days),
        )


__all__ = [
    "SqlUserStatisticsProvider",
    "UserStatistics",
    "UserStatisticsProvider",
    "calculate_study_streaks",
]
