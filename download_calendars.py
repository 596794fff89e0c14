#!/usr/bin/env python3
"""
download_calendars.py

Download every configured .ics feed at once and read its VEVENTs into
RawEvent records. Either every feed succeeds or the first failure (in source
order) is returned and nothing downstream runs.

Dependencies:
    pip install requests icalendar
"""
from __future__ import annotations

import datetime as _dt
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests
from icalendar import Calendar

from calendar_errors import FetchError, ParseError, StageResult
from calendar_models import CalendarSource, RawEvent
from normalise_timezones import to_instant

HEADERS = {"User-Agent": "Calendar-Merger/2.0 (+outlook2github)"}
TIMEOUT = 30

FetchFn = Callable[[CalendarSource], StageResult[List[RawEvent]]]


def _is_iana(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def _wall_clock(prop) -> Tuple[_dt.datetime, Optional[str]]:
    """Split a decoded DTSTART/DTEND into a naive wall clock and its zone name."""
    value = prop.dt
    if not isinstance(value, _dt.datetime):  # all-day DATE
        return _dt.datetime.combine(value, _dt.time.min), None

    tzid = prop.params.get("TZID")
    if tzid and _is_iana(tzid):
        return value.replace(tzinfo=None), str(tzid)
    key = getattr(value.tzinfo, "key", None)
    if key and _is_iana(key):
        # e.g. Outlook "W. Europe Standard Time", mapped by the parser to Europe/Berlin
        return value.replace(tzinfo=None), key
    if value.tzinfo is not None:
        # UTC values, or a custom VTIMEZONE without an IANA key
        return value.astimezone(_dt.timezone.utc).replace(tzinfo=None), "UTC"
    if tzid:
        print(f"   Unknown TZID {tzid!r}; treating value as floating.", file=sys.stderr)
    return value, None


def _event_end(component, start_prop) -> Tuple[_dt.datetime, Optional[str]]:
    if "DTEND" in component:
        return _wall_clock(component["DTEND"])
    start, zone = _wall_clock(start_prop)
    if "DURATION" in component:
        return start + component.decoded("DURATION"), zone
    if not isinstance(start_prop.dt, _dt.datetime):
        return start + _dt.timedelta(days=1), zone
    return start, zone


def _text(component, key: str) -> Optional[str]:
    value = component.get(key)
    return None if value is None else str(value)


def parse_calendar(data: bytes | str, url: Optional[str] = None) -> StageResult[List[RawEvent]]:
    """Read VEVENT components of an .ics document, in document order."""
    try:
        cal = Calendar.from_ical(data)
    except ValueError as e:
        return StageResult.failure(ParseError(f"Malformed iCalendar data: {e}", url=url))

    try:
        return _read_events(cal, url)
    except Exception as e:
        return StageResult.failure(ParseError(f"Unreadable iCalendar data: {e!r}", url=url))


def _read_events(cal: Calendar, url: Optional[str]) -> StageResult[List[RawEvent]]:
    events: List[RawEvent] = []
    for component in cal.walk("VEVENT"):
        uid = _text(component, "UID") or f"event-{len(events)}"
        if "DTSTART" not in component:
            print(f"   Skipping event {uid!r} without DTSTART.", file=sys.stderr)
            continue
        if "RECURRENCE-ID" in component:
            # overrides of a recurring master are not expanded separately
            print(f"   Skipping override of recurring event {uid!r}.", file=sys.stderr)
            continue

        try:
            start, start_tz = _wall_clock(component["DTSTART"])
            end, end_tz = _event_end(component, component["DTSTART"])
        except (ValueError, TypeError, KeyError) as e:
            return StageResult.failure(ParseError(f"Bad date in event {uid!r}: {e}", url=url))

        if to_instant(end, end_tz, "UTC") <= to_instant(start, start_tz, "UTC"):
            print(f"   Skipping event {uid!r} with non-positive duration.", file=sys.stderr)
            continue

        rrule = component.get("RRULE")
        if isinstance(rrule, list):
            rrule = rrule[0]
        events.append(
            RawEvent(
                uid=uid,
                summary=_text(component, "SUMMARY") or "",
                description=_text(component, "DESCRIPTION"),
                location=_text(component, "LOCATION"),
                start=start,
                end=end,
                recurrence_rule_text=rrule.to_ical().decode() if rrule is not None else None,
                start_timezone=start_tz,
                end_timezone=end_tz,
            )
        )
    return StageResult.success(events)


def download_ics(url: str, timeout: int = TIMEOUT) -> bytes:
    resp = requests.get(url, headers=HEADERS, timeout=timeout)
    resp.raise_for_status()
    return resp.content


def fetch_source(source: CalendarSource) -> StageResult[List[RawEvent]]:
    """Download one feed and parse it."""
    print(f"→ Downloading '{source.name or source.url}' from {urlparse(source.url).netloc} …")
    try:
        body = download_ics(source.url)
    except requests.RequestException as e:
        return StageResult.failure(FetchError(f"Download failed: {e}", url=source.url))
    return parse_calendar(body, url=source.url)


def _joined(future, source: CalendarSource) -> StageResult[List[RawEvent]]:
    try:
        return future.result()
    except Exception as e:
        return StageResult.failure(FetchError(f"Fetch crashed: {e!r}", url=source.url))


def fetch_all_sources(
    sources: Sequence[CalendarSource],
    fetch: FetchFn = fetch_source,
) -> StageResult[List[List[RawEvent]]]:
    """Fetch every source concurrently and join; all-or-nothing."""
    ordered = sorted(sources, key=lambda s: s.order)
    if not ordered:
        return StageResult.success([])

    with ThreadPoolExecutor(max_workers=len(ordered), thread_name_prefix="calendar-fetch") as pool:
        futures = [pool.submit(fetch, source) for source in ordered]
        results = [_joined(future, source) for future, source in zip(futures, ordered)]

    for result in results:
        if not result.ok:
            return StageResult.failure(result.error)
    return StageResult.success([result.value for result in results])
