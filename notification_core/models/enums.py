"""Enums shared by every notification domain (stored by value)."""

from __future__ import annotations

import enum

from notification_core.core.exceptions import ValidationError


class NotificationType(str, enum.Enum):
    STUDY_REMINDER = "study_reminder"
    ACHIEVEMENT_UNLOCK = "achievement_unlock"
    DUEL_INVITATION = "duel_invitation"
    DUEL_RESULT = "duel_result"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACTIVITY = "friend_activity"
    CONTENT_UPDATE = "content_update"
    STREAK_REMINDER = "streak_reminder"
    PLAN_REMINDER = "plan_reminder"
    COACHING_NOTE = "coaching_note"
    MOTIVATIONAL_MESSAGE = "motivational_message"
    SYSTEM_ANNOUNCEMENT = "system_announcement"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class DeliveryChannelName(str, enum.Enum):
    PUSH = "push"
    EMAIL = "email"
    IN_APP = "in_app"


def enum_values(enum_cls) -> list:
    """`values_callable` for SAEnum so rows hold the enum value, not its name."""
    return [member.value for member in enum_cls]


def parse_notification_type(value) -> NotificationType:
    if isinstance(value, NotificationType):
        return value
    try:
        return NotificationType(str(value))
    except ValueError as exc:
        raise ValidationError(
            f"Unknown notification type '{value}'", field="notification_type"
        ) from exc


__all__ = [
    "DeliveryChannelName",
    "NotificationStatus",
    "NotificationType",
    "enum_values",
    "parse_notification_type",
]
