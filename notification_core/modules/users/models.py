"""SQLAlchemy models for the user collaborator tables the core reads from."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String

from notification_core.core.database import Base
from notification_core.core.db_defaults import UTCDateTime, timestamp_default


class User(Base):
    """Platform account; duel counters are maintained by the duel service."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    total_duels = Column(Integer, nullable=False, default=0)
    duels_won = Column(Integer, nullable=False, default=0)
    duels_lost = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())


class StudySession(Base):
    """One study sitting; the source of streak and study-time statistics."""

    __tablename__ = "study_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, nullable=True)
    study_date = Column(Date, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, server_default=timestamp_default())

    __table_args__ = (Index("idx_study_sessions_user_date", "user_id", "study_date"),)


__all__ = ["StudySession", "User"]
