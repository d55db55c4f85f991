"""Structured job cadences.

A `Cadence` is validated when it is built and converts to an APScheduler trigger,
so a malformed schedule fails at registration rather than at first fire.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Union

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from notification_core.core.exceptions import ValidationError

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class CadenceKind(str, enum.Enum):
    INTERVAL = "interval"
    DAILY = "daily"
    WEEKLY = "weekly"
    EVERY_N_DAYS = "every_n_days"
    ONCE = "once"


def _weekday_index(day: Union[int, str]) -> int:
    if isinstance(day, bool):
        raise ValidationError(f"Invalid day of week {day!r}", field="day_of_week")
    if isinstance(day, int):
        if 0 <= day <= 6:
            return day
    elif isinstance(day, str) and day[:3].lower() in WEEKDAYS:
        return WEEKDAYS.index(day[:3].lower())
    raise ValidationError(
        f"Invalid day of week {day!r}; use 0-6 (Monday=0) or a weekday name",
        field="day_of_week",
    )


@dataclass(frozen=True)
class Cadence:
    kind: CadenceKind
    interval: Optional[timedelta] = None
    at: Optional[time] = None
    day_of_week: Optional[int] = None
    every_days: Optional[int] = None
    run_at: Optional[datetime] = None

    def __post_init__(self):
        kind = self.kind
        if kind is CadenceKind.INTERVAL:
            if not isinstance(self.interval, timedelta) or self.interval <= timedelta(0):
                raise ValidationError("Interval cadence needs a positive interval", field="interval")
            return
        if kind is CadenceKind.ONCE:
            if not isinstance(self.run_at, datetime):
                raise ValidationError("One-time cadence needs a run_at datetime", field="run_at")
            return
        if not isinstance(self.at, time):
            raise ValidationError(f"{kind.value} cadence needs a time of day", field="at")
        if kind is CadenceKind.WEEKLY:
            object.__setattr__(self, "day_of_week", _weekday_index(self.day_of_week))
        if kind is CadenceKind.EVERY_N_DAYS:
            if not isinstance(self.every_days, int) or not 1 <= self.every_days <= 31:
                raise ValidationError("every_days must be between 1 and 31", field="every_days")

    # ------------------------------------------------------------ constructors
    @classmethod
    def every(cls, *, days: int = 0, hours: int = 0, minutes: int = 0, seconds: int = 0) -> "Cadence":
        return cls(
            CadenceKind.INTERVAL,
            interval=timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds),
        )

    @classmethod
    def daily(cls, at: time) -> "Cadence":
        return cls(CadenceKind.DAILY, at=at)

    @classmethod
    def weekly(cls, day_of_week: Union[int, str], at: time) -> "Cadence":
        return cls(CadenceKind.WEEKLY, at=at, day_of_week=day_of_week)

    @classmethod
    def every_n_days(cls, days: int, at: time) -> "Cadence":
        return cls(CadenceKind.EVERY_N_DAYS, at=at, every_days=days)

    @classmethod
    def once(cls, run_at: datetime) -> "Cadence":
        if isinstance(run_at, datetime) and run_at.tzinfo is None:
            run_at = run_at.replace(tzinfo=timezone.utc)
        return cls(CadenceKind.ONCE, run_at=run_at)

    # ----------------------------------------------------------------- helpers
    @property
    def recurring(self) -> bool:
        return self.kind is not CadenceKind.ONCE

    def to_trigger(self, tz: str = "UTC") -> BaseTrigger:
        if self.kind is CadenceKind.INTERVAL:
            return IntervalTrigger(seconds=int(self.interval.total_seconds()), timezone=tz)
        if self.kind is CadenceKind.ONCE:
            return DateTrigger(run_date=self.run_at, timezone=tz)
        clock = {"hour": self.at.hour, "minute": self.at.minute, "second": self.at.second}
        if self.kind is CadenceKind.WEEKLY:
            return CronTrigger(day_of_week=WEEKDAYS[self.day_of_week], timezone=tz, **clock)
        if self.kind is CadenceKind.EVERY_N_DAYS:
            return CronTrigger(day=f"*/{self.every_days}", timezone=tz, **clock)
        return CronTrigger(timezone=tz, **clock)

    def describe(self) -> str:
        if self.kind is CadenceKind.INTERVAL:
            seconds = int(self.interval.total_seconds())
            for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
                if seconds % size == 0:
                    count = seconds // size
                    return f"every {count} {unit}{'s' if count != 1 else ''}"
            return f"every {seconds} seconds"
        if self.kind is CadenceKind.ONCE:
            return f"once at {self.run_at.isoformat()}"
        at = self.at.strftime("%H:%M")
        if self.kind is CadenceKind.WEEKLY:
            return f"weekly on {WEEKDAYS[self.day_of_week]} at {at}"
        if self.kind is CadenceKind.EVERY_N_DAYS:
            return f"every {self.every_days} days at {at}"
        return f"daily at {at}"

    def next_fire_times(
        self, count: int = 5, now: Optional[datetime] = None, tz: str = "UTC"
    ) -> List[datetime]:
        trigger = self.to_trigger(tz)
        current = now or datetime.now(timezone.utc)
        previous = None
        times: List[datetime] = []
        for _ in range(count):
            upcoming = trigger.get_next_fire_time(previous, current)
            if upcoming is None:
                break
            times.append(upcoming)
            previous = current = upcoming
        return times


__all__ = ["Cadence", "CadenceKind", "WEEKDAYS"]
