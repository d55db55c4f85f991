"""Read-only user collaborator: accounts, study activity and statistics snapshots."""

from .models import StudySession, User
from .repository import UserRepository
from .statistics import (
    SqlUserStatisticsProvider,
    UserStatistics,
    UserStatisticsProvider,
    calculate_study_streaks,
)

__all__ = [
    "SqlUserStatisticsProvider",
    "StudySession",
    "User",
    "UserRepository",
    "UserStatistics",
    "UserStatisticsProvider",
    "calculate_study_streaks",
]
