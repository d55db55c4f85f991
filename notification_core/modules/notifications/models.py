"""SQLAlchemy models for notification intents and their delivery attempts."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from notification_core.core.database import Base
from notification_core.core.db_defaults import UTCDateTime, timestamp_default
from notification_core.models.enums import (
    DeliveryChannelName,
    NotificationStatus,
    NotificationType,
    enum_values,
)

# Forward-only ordering; FAILED is terminal and only reachable from PENDING.
STATUS_RANK = {
    NotificationStatus.PENDING: 0,
    NotificationStatus.SENT: 1,
    NotificationStatus.DELIVERED: 2,
    NotificationStatus.READ: 3,
}
SENT_STATUSES = (
    NotificationStatus.SENT,
    NotificationStatus.DELIVERED,
    NotificationStatus.READ,
)


class Notification(Base):
    """A notification intent: the decision to notify, independent of delivery outcome."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notification_type = Column(
        SAEnum(NotificationType, name="notification_type", values_callable=enum_values),
        nullable=False,
    )
    template_name = Column(String, nullable=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    action_url = Column(String, nullable=True)
    icon_name = Column(String, nullable=True)
    status = Column(
        SAEnum(NotificationStatus, name="notification_status", values_callable=enum_values),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    notification_metadata = Column("metadata", JSON, nullable=False, default=dict)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String, nullable=True)
    # Set when a pass defers the intent; the scan visits never-evaluated rows first.
    last_evaluated_at = Column(UTCDateTime, nullable=True)
    # Held by the pass delivering the intent; expires after the in-flight TTL.
    claim_id = Column(String(32), nullable=True)
    claimed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())
    sent_at = Column(UTCDateTime, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)
    read_at = Column(UTCDateTime, nullable=True)

    delivery_logs = relationship(
        "NotificationDeliveryLog",
        back_populates="notification",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_notifications_status_created", "status", "created_at"),
        Index("idx_notifications_status_evaluated", "status", "last_evaluated_at"),
        Index("idx_notifications_user_type_sent", "user_id", "notification_type", "sent_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "notification_type": self.notification_type.value,
            "title": self.title,
            "body": self.body,
            "action_url": self.action_url,
            "icon_name": self.icon_name,
            "status": self.status.value,
            "metadata": self.notification_metadata or {},
            "created_at": self.created_at,
            "sent_at": self.sent_at,
            "read_at": self.read_at,
        }


class NotificationDeliveryLog(Base):
    """One channel attempt for one intent."""

    __tablename__ = "notification_delivery_logs"

    id = Column(Integer, primary_key=True, index=True)
    notification_id = Column(
        Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False
    )
    channel = Column(
        SAEnum(DeliveryChannelName, name="delivery_channel", values_callable=enum_values),
        nullable=False,
    )
    success = Column(Boolean, nullable=False, default=False)
    error_message = Column(String, nullable=True)
    attempted_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())

    notification = relationship("Notification", back_populates="delivery_logs")


__all__ = [
    "Notification",
    "NotificationDeliveryLog",
    "SENT_STATUSES",
    "STATUS_RANK",
]
