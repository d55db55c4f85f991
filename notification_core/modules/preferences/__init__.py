"""Per-user, per-type notification preferences."""

from .models import UserNotificationPreference
from .schemas import Preference, PreferenceUpdate, parse_time_of_day
from .service import ONBOARDING_DEFAULTS, PreferenceRepository, PreferenceResolver

__all__ = [
    "ONBOARDING_DEFAULTS",
    "Preference",
    "PreferenceRepository",
    "PreferenceResolver",
    "PreferenceUpdate",
    "UserNotificationPreference",
    "parse_time_of_day",
]
