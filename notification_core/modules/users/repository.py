"""Data-access helpers for the user collaborator."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .models import User


class UserRepository:
    """Read users for sweeps, announcements and e-mail lookups."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def active_user_ids(self, limit: Optional[int] = None) -> List[int]:
        query = (
            self.db.query(User.id)
            .filter(User.is_active.is_(True))
            .order_by(User.created_at.desc(), User.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [row.id for row in query.all()]

    def emails_for(self, user_ids: Iterable[int]) -> Dict[int, str]:
        ids = list(user_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(User.id, User.email)
            .filter(User.id.in_(ids), User.email.isnot(None))
            .all()
        )
        return {row.id: row.email for row in rows}


__all__ = ["UserRepository"]
