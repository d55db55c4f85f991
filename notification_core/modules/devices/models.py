"""SQLAlchemy models and enums for device registrations."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from notification_core.core.database import Base
from notification_core.core.db_defaults import UTCDateTime, timestamp_default
from notification_core.models.enums import enum_values


class DevicePlatform(str, enum.Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class TokenDisableReason(str, enum.Enum):
    DUPLICATE_CLEANUP = "duplicate_cleanup"
    STALE_INVALID = "stale_invalid"
    INVALID_TOKEN = "invalid_token"
    USER_LOGOUT = "user_logout"


class DeviceToken(Base):
    """A push delivery address registered by one of a user's devices."""

    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(512), nullable=False)
    platform = Column(
        SAEnum(
            DevicePlatform,
            name="device_platform",
            values_callable=enum_values,
        ),
        nullable=False,
    )
    device_id = Column(String, nullable=True)
    device_model = Column(String, nullable=True)
    app_version = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    registered_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())
    last_used_at = Column(UTCDateTime, nullable=True)
    disabled_at = Column(UTCDateTime, nullable=True)
    disabled_reason = Column(String, nullable=True)
    updated_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_tokens_user_token"),
        Index("idx_device_tokens_user_active", "user_id", "is_active"),
        Index("idx_device_tokens_last_used", "last_used_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token": self.token,
            "platform": self.platform.value if self.platform else None,
            "device_id": self.device_id,
            "device_model": self.device_model,
            "is_active": self.is_active,
            "registered_at": self.registered_at,
            "last_used_at": self.last_used_at,
            "disabled_at": self.disabled_at,
            "disabled_reason": self.disabled_reason,
        }


__all__ = ["DevicePlatform", "DeviceToken", "TokenDisableReason"]
