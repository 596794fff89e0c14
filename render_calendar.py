"""
render_calendar.py
Render a merged calendar as iCalendar text and derive its published filename.
"""
from __future__ import annotations

import datetime as _dt
import re
import uuid
from typing import Optional

from icalendar import Calendar, Event

from calendar_models import MergedCalendar
from normalise_timezones import get_zone

PRODID = "-//Merged via master_script.py//EN"
CONTENT_TYPE = "text/calendar"


def slugify(name: str) -> str:
    """Lower-case ``name`` and collapse every run of other characters into one hyphen."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def calendar_filename(name: str) -> str:
    return f"{slugify(name)}.ics"


def occurrence_uid(slug: str, index: int, start: _dt.datetime) -> str:
    """Stable UID, identical across runs for the same position and start."""
    seed = f"{slug}/{index}/{start.isoformat()}"
    return f"{uuid.uuid5(uuid.NAMESPACE_URL, seed)}@{slug or 'calendar'}"


def render_calendar(merged: MergedCalendar, stamp: Optional[_dt.datetime] = None) -> bytes:
    """Serialise ``merged`` with every start/end expressed in its target timezone."""
    if stamp is None:
        stamp = _dt.datetime.now(_dt.timezone.utc)
    zone = get_zone(merged.target_timezone)
    slug = slugify(merged.name)

    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("name", merged.name)
    cal.add("x-wr-calname", merged.name)
    cal.add("x-wr-timezone", merged.target_timezone)

    for index, occ in enumerate(merged.occurrences):
        event = Event()
        event.add("uid", occurrence_uid(slug, index, occ.start))
        event.add("dtstamp", stamp)
        event.add("dtstart", occ.start.astimezone(zone))
        event.add("dtend", occ.end.astimezone(zone))
        event.add("summary", occ.summary)
        if occ.description is not None:
            event.add("description", occ.description)
        if occ.location is not None:
            event.add("location", occ.location)
        cal.add_component(event)

    cal.add_missing_timezones()
    return cal.to_ical()
