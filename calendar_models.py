"""
calendar_models.py
Plain value types passed between the merge stages, plus the expansion window.

Every value is created fresh for one run and never mutated afterwards.
"""
from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

UTC = _dt.timezone.utc


@dataclass(frozen=True)
class CalendarSource:
    """One input feed; ``order`` fixes its position in the merged output."""

    url: str
    order: int
    name: str = ""


@dataclass(frozen=True)
class RawEvent:
    """A VEVENT as read from a source.

    ``start`` and ``end`` are naive wall-clock values. The matching
    ``*_timezone`` names the IANA zone they are expressed in, or is ``None``
    when the value is floating (the target timezone applies).
    """

    uid: str
    summary: str
    start: _dt.datetime
    end: _dt.datetime
    description: Optional[str] = None
    location: Optional[str] = None
    recurrence_rule_text: Optional[str] = None
    start_timezone: Optional[str] = None
    end_timezone: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule_text)


@dataclass(frozen=True)
class Occurrence:
    """A concrete event instance; ``start``/``end`` are UTC-aware instants."""

    summary: str
    start: _dt.datetime
    end: _dt.datetime
    description: Optional[str] = None
    location: Optional[str] = None

    @property
    def duration(self) -> _dt.timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class MergedCalendar:
    name: str
    target_timezone: str
    occurrences: Tuple[Occurrence, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.occurrences)


@dataclass(frozen=True)
class Window:
    """Half-open interval ``[start, end)`` of UTC-aware instants."""

    start: _dt.datetime
    end: _dt.datetime

    def __contains__(self, instant: _dt.datetime) -> bool:
        return self.start <= instant < self.end


def compute_window(timezone: str, now: Optional[_dt.datetime] = None) -> Window:
    """Return today's window: local midnight until the end of the same day next year."""
    zone = ZoneInfo(timezone)
    if now is None:
        now = _dt.datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    today = now.astimezone(zone).date()
    last_day = today + relativedelta(years=1)
    start = _dt.datetime.combine(today, _dt.time.min, tzinfo=zone)
    end = _dt.datetime.combine(last_day, _dt.time.max, tzinfo=zone)
    return Window(start=start.astimezone(UTC), end=end.astimezone(UTC))
