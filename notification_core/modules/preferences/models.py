"""SQLAlchemy model for per-user, per-type notification preferences."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Time,
    UniqueConstraint,
)

from notification_core.core.database import Base
from notification_core.core.db_defaults import UTCDateTime, timestamp_default
from notification_core.models.enums import NotificationType, enum_values


class UserNotificationPreference(Base):
    """Channel toggles, frequency cap and quiet hours for one notification type."""

    __tablename__ = "user_notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notification_type = Column(
        SAEnum(NotificationType, name="notification_type", values_callable=enum_values),
        nullable=False,
    )
    in_app_enabled = Column(Boolean, nullable=False, default=True)
    push_enabled = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    frequency_hours = Column(Integer, nullable=False, default=0)
    quiet_hours_start = Column(Time, nullable=True)
    quiet_hours_end = Column(Time, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())
    updated_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "notification_type", name="uq_preferences_user_type"),
    )


__all__ = ["UserNotificationPreference"]
