"""Aggregate import of every ORM model so `Base.metadata` knows all tables."""

from notification_core.models.base import Base
from notification_core.modules.achievements.models import Achievement, UserAchievement
from notification_core.modules.devices.models import DeviceToken
from notification_core.modules.notifications.models import Notification, NotificationDeliveryLog
from notification_core.modules.preferences.models import UserNotificationPreference
from notification_core.modules.users.models import StudySession, User

__all__ = [
    "Achievement",
    "Base",
    "DeviceToken",
    "Notification",
    "NotificationDeliveryLog",
    "StudySession",
    "User",
    "UserAchievement",
    "UserNotificationPreference",
]
