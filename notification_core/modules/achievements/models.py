"""SQLAlchemy models for achievement rules and awards."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from notification_core.core.database import Base
from notification_core.core.db_defaults import UTCDateTime, timestamp_default


class Achievement(Base):
    """A named predicate over user statistics; ``requirements`` maps stat keys to conditions."""

    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    requirements = Column(JSON, nullable=False, default=dict)
    points = Column(Integer, nullable=False, default=0)
    icon_name = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())

    awards = relationship("UserAchievement", back_populates="achievement")


class UserAchievement(Base):
    """One award per (user, achievement); never updated once written."""

    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id = Column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    earned_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())

    achievement = relationship("Achievement", back_populates="awards")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_pair"),
    )


__all__ = ["Achievement", "UserAchievement"]
