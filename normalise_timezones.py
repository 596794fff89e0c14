"""
normalise_timezones.py
Turn naive wall-clock values into absolute (UTC) instants.

Start and end are resolved independently: a field's own zone when the source
gave one, otherwise the calendar's target zone. The target zone is applied
again only when the merged calendar is rendered.
"""
from __future__ import annotations

import datetime as _dt
from functools import lru_cache
from typing import Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from calendar_errors import ParseError, StageResult
from calendar_models import Occurrence, RawEvent

UTC = _dt.timezone.utc


@lru_cache(maxsize=None)
def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def zone_for(field_timezone: Optional[str], target_timezone: str) -> ZoneInfo:
    """Zone a field is expressed in; raises ParseError for an unknown name."""
    name = field_timezone or target_timezone
    try:
        return get_zone(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ParseError(f"Unknown timezone {name!r}") from e


def to_instant(value: _dt.datetime, field_timezone: Optional[str], target_timezone: str) -> _dt.datetime:
    """Reinterpret ``value`` in its zone and return the UTC instant."""
    if value.tzinfo is not None:
        return value.astimezone(UTC)
    zone = zone_for(field_timezone, target_timezone)
    return value.replace(tzinfo=zone).astimezone(UTC)


def template_duration(event: RawEvent, target_timezone: str) -> _dt.timedelta:
    """Absolute length of the event as written in the source."""
    start = to_instant(event.start, event.start_timezone, target_timezone)
    end = to_instant(event.end, event.end_timezone, target_timezone)
    return end - start


def normalise_event(event: RawEvent, target_timezone: str) -> StageResult[Occurrence]:
    """Resolve an event's own start/end, each in its own zone."""
    try:
        start = to_instant(event.start, event.start_timezone, target_timezone)
        end = to_instant(event.end, event.end_timezone, target_timezone)
    except ParseError as e:
        e.message = f"{e.message} in event {event.uid!r}"
        return StageResult.failure(e)
    return StageResult.success(
        Occurrence(
            summary=event.summary,
            description=event.description,
            location=event.location,
            start=start,
            end=end,
        )
    )
