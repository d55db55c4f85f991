"""Preference resolution for the dispatch pipeline.

Responsibilities:
- Resolve the effective preference for a (user, type), falling back to platform
  defaults when no row exists.
- Validate and upsert partial updates coming from the owning user.
- Evaluate quiet hours in the configured timezone.
- Seed onboarding rows and list users who opted into a reminder type.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notification_core.core.config import settings
from notification_core.core.exceptions import ValidationError
from notification_core.models.enums import NotificationType, parse_notification_type

from .models import UserNotificationPreference
from .schemas import Preference, PreferenceUpdate

logger = logging.getLogger("notification_core.preferences")

# Rows written when an account is created; event-driven types are not rate limited.
ONBOARDING_DEFAULTS: Dict[str, Any] = {
    "in_app_enabled": True,
    "push_enabled": True,
    "email_enabled": False,
    "frequency_hours": 24,
    "quiet_hours_start": time(22, 0),
    "quiet_hours_end": time(8, 0),
}
UNTHROTTLED_TYPES = {
    NotificationType.ACHIEVEMENT_UNLOCK,
    NotificationType.DUEL_INVITATION,
    NotificationType.DUEL_RESULT,
    NotificationType.FRIEND_REQUEST,
    NotificationType.SYSTEM_ANNOUNCEMENT,
}


class PreferenceRepository:
    """CRUD over `UserNotificationPreference` rows."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int, notification_type: NotificationType) -> Optional[UserNotificationPreference]:
        return (
            self.db.query(UserNotificationPreference)
            .filter(
                UserNotificationPreference.user_id == user_id,
                UserNotificationPreference.notification_type == notification_type,
            )
            .first()
        )

    def for_user(self, user_id: int) -> List[UserNotificationPreference]:
        return (
            self.db.query(UserNotificationPreference)
            .filter(UserNotificationPreference.user_id == user_id)
            .all()
        )

    def user_ids_enabled_for(self, notification_type: NotificationType) -> List[int]:
        rows = (
            self.db.query(UserNotificationPreference.user_id)
            .filter(
                UserNotificationPreference.notification_type == notification_type,
                UserNotificationPreference.in_app_enabled.is_(True),
                or_(
                    UserNotificationPreference.push_enabled.is_(True),
                    UserNotificationPreference.email_enabled.is_(True),
                ),
            )
            .order_by(UserNotificationPreference.user_id)
            .all()
        )
        return [row.user_id for row in rows]

    def upsert(
        self,
        user_id: int,
        notification_type: NotificationType,
        values: Mapping[str, Any],
        when: datetime,
    ) -> UserNotificationPreference:
        row = self.get(user_id, notification_type)
        if row is None:
            row = UserNotificationPreference(user_id=user_id, notification_type=notification_type)
            self.db.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = when
        self.db.commit()
        self.db.refresh(row)
        return row


class PreferenceResolver:
    """Read path consulted before every send attempt, plus the owner's write path."""

    def __init__(
        self,
        db: Session,
        *,
        timezone_name: Optional[str] = None,
        clock=None,
    ):
        self.repository = PreferenceRepository(db)
        self.tz = ZoneInfo(timezone_name or settings.quiet_hours_timezone)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, user_id: int, notification_type) -> Preference:
        ntype = parse_notification_type(notification_type)
        row = self.repository.get(user_id, ntype)
        if row is None:
            return Preference(user_id=user_id, notification_type=ntype, is_default=True)
        return Preference.model_validate(row)

    def update(
        self,
        user_id: int,
        notification_type,
        partial: Union[PreferenceUpdate, Mapping[str, Any]],
    ) -> Preference:
        ntype = parse_notification_type(notification_type)
        if not isinstance(partial, PreferenceUpdate):
            try:
                partial = PreferenceUpdate.model_validate(dict(partial))
            except PydanticValidationError as exc:
                first = exc.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ()))
                raise ValidationError(
                    f"Invalid preference update: {first.get('msg')}",
                    field=field or None,
                    details={"errors": [err.get("msg") for err in exc.errors()]},
                ) from exc

        values = partial.model_dump(exclude_unset=True)
        for key in ("in_app_enabled", "push_enabled", "email_enabled", "frequency_hours"):
            if key in values and values[key] is None:
                raise ValidationError(f"'{key}' cannot be null", field=key)

        row = self.repository.upsert(user_id, ntype, values, self._clock())
        logger.info("Updated %s preferences for user %s: %s", ntype.value, user_id, sorted(values))
        return Preference.model_validate(row)

    def is_quiet_hours(self, preference: Preference, now: Optional[datetime] = None) -> bool:
        moment = (now or self._clock()).astimezone(self.tz).time()
        return preference.is_quiet_at(moment)

    def initialize_defaults(self, user_id: int) -> List[Preference]:
        """Seed onboarding rows for every type the user has no row for yet."""
        existing = {row.notification_type for row in self.repository.for_user(user_id)}
        created = []
        for ntype in NotificationType:
            if ntype in existing:
                continue
            values = dict(ONBOARDING_DEFAULTS)
            if ntype in UNTHROTTLED_TYPES:
                values["frequency_hours"] = 0
            try:
                row = self.repository.upsert(user_id, ntype, values, self._clock())
            except IntegrityError:
                self.repository.db.rollback()
                continue
            created.append(Preference.model_validate(row))
        logger.info("Initialized %s default preferences for user %s", len(created), user_id)
        return created

    def users_with_type_enabled(self, notification_type) -> List[int]:
        return self.repository.user_ids_enabled_for(parse_notification_type(notification_type))


__all__ = ["ONBOARDING_DEFAULTS", "PreferenceRepository", "PreferenceResolver"]
