"""Pydantic schemas for preference updates and resolved preferences."""

from __future__ import annotations

import re
from datetime import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from notification_core.models.enums import DeliveryChannelName, NotificationType

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


def parse_time_of_day(value) -> Optional[time]:
    """Accept ``HH:MM`` / ``HH:MM:SS`` strings or `time` objects."""
    if value is None or isinstance(value, time):
        return value
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"'{value}' is not a valid time of day (HH:MM or HH:MM:SS)")
    hours, minutes, seconds = match.groups()
    return time(int(hours), int(minutes), int(seconds or 0))


class PreferenceUpdate(BaseModel):
    """Partial update; only fields explicitly provided are written."""

    model_config = ConfigDict(extra="forbid")

    in_app_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    frequency_hours: Optional[int] = Field(default=None, ge=0)
    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None

    @field_validator("quiet_hours_start", "quiet_hours_end", mode="before")
    @classmethod
    def _coerce_time(cls, value):
        return parse_time_of_day(value)


class Preference(BaseModel):
    """Effective preference for one (user, type); defaults when no row exists."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    user_id: int
    notification_type: NotificationType
    in_app_enabled: bool = True
    push_enabled: bool = True
    email_enabled: bool = True
    frequency_hours: int = 0
    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None
    is_default: bool = False

    def enabled_channels(self) -> List[DeliveryChannelName]:
        channels = []
        if self.push_enabled:
            channels.append(DeliveryChannelName.PUSH)
        if self.email_enabled:
            channels.append(DeliveryChannelName.EMAIL)
        if self.in_app_enabled:
            channels.append(DeliveryChannelName.IN_APP)
        return channels

    def is_quiet_at(self, moment: time) -> bool:
        """True when ``moment`` falls in ``[start, end)``; the window may wrap midnight."""
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start is None or end is None or start == end:
            return False
        if start < end:
            return start <= moment < end
        return moment >= start or moment < end


__all__ = ["Preference", "PreferenceUpdate", "parse_time_of_day"]
