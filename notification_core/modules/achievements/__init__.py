"""Achievement rules, awards and the evaluator."""

from .models import Achievement, UserAchievement
from .repository import AchievementRepository
from .rules import condition_met, requirement_progress, requirements_met
from .service import (
    AchievementCheckResult,
    AchievementEvaluator,
    AwardedAchievement,
    SweepResult,
)

__all__ = [
    "Achievement",
    "AchievementCheckResult",
    "AchievementEvaluator",
    "AchievementRepository",
    "AwardedAchievement",
    "SweepResult",
    "UserAchievement",
    "condition_met",
    "requirement_progress",
    "requirements_met",
]
