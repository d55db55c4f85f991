"""Notification orchestration core package init."""

from notification_core.core.config import Settings, settings
from notification_core.core.database import Base, SessionLocal, engine, get_db

__all__ = [
    "settings",
    "Settings",
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
]
