"""Core database access helpers."""

from notification_core.models.base import Base

from .session import SessionLocal, build_engine, engine, get_db, session_scope

__all__ = ["Base", "SessionLocal", "build_engine", "engine", "get_db", "session_scope"]
