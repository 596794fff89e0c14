"""
expand_recurrences.py
Materialise recurring events inside the run's window.

A non-recurring event always yields exactly one occurrence, whether or not it
falls inside the window. A recurring event yields one occurrence per
rule-generated start in ``[window.start, window.end)``; each keeps the
template's absolute duration, so the local end time can move across a
daylight-saving change.
"""
from __future__ import annotations

import datetime as _dt
import re
from typing import Iterator, List

from dateutil.rrule import rrulestr

from calendar_errors import ParseError, RecurrenceRuleError, StageResult
from calendar_models import Occurrence, RawEvent, Window
from normalise_timezones import normalise_event, template_duration, to_instant, zone_for

UTC = _dt.timezone.utc

# Slack around the window when searching in wall-clock time; exact filtering
# happens afterwards on absolute instants.
SEARCH_MARGIN = _dt.timedelta(days=1)

_UTC_UNTIL = re.compile(r"UNTIL=(\d{8}T\d{6})Z", re.IGNORECASE)


def _localise_until(rule_text: str, zone) -> str:
    """Rewrite a UTC UNTIL into the anchor zone's wall clock."""

    def repl(match: re.Match) -> str:
        until = _dt.datetime.strptime(match.group(1), "%Y%m%dT%H%M%S").replace(tzinfo=UTC)
        local = until.astimezone(zone).replace(tzinfo=None)
        return f"UNTIL={local.strftime('%Y%m%dT%H%M%S')}"

    return _UTC_UNTIL.sub(repl, rule_text)


def rule_starts(event: RawEvent, window: Window, target_timezone: str) -> Iterator[_dt.datetime]:
    """Yield the UTC start of every instance the event's rule produces inside ``window``."""
    zone = zone_for(event.start_timezone, target_timezone)
    anchor = event.start.replace(tzinfo=None)
    rule_text = _localise_until(event.recurrence_rule_text.strip(), zone)

    try:
        rule = rrulestr(rule_text, dtstart=anchor)
    except (ValueError, TypeError, KeyError) as e:
        raise RecurrenceRuleError(
            f"Unsupported recurrence rule {event.recurrence_rule_text!r} in event {event.uid!r}: {e}"
        ) from e

    after = (window.start.astimezone(zone) - SEARCH_MARGIN).replace(tzinfo=None)
    before = (window.end.astimezone(zone) + SEARCH_MARGIN).replace(tzinfo=None)
    for local_start in rule.between(after, before, inc=True):
        instant = to_instant(local_start, event.start_timezone, target_timezone)
        if instant in window:
            yield instant


def expand_event(event: RawEvent, window: Window, target_timezone: str) -> StageResult[List[Occurrence]]:
    if not event.is_recurring:
        single = normalise_event(event, target_timezone)
        if not single.ok:
            return StageResult.failure(single.error)
        return StageResult.success([single.value])

    try:
        duration = template_duration(event, target_timezone)
        starts = list(rule_starts(event, window, target_timezone))
    except (RecurrenceRuleError, ParseError) as e:
        return StageResult.failure(e)

    return StageResult.success(
        [
            Occurrence(
                summary=event.summary,
                description=event.description,
                location=event.location,
                start=start,
                end=start + duration,
            )
            for start in starts
        ]
    )


def expand_events(events: List[RawEvent], window: Window, target_timezone: str) -> StageResult[List[Occurrence]]:
    """Expand a whole source in event order; stops at the first failing event."""
    occurrences: List[Occurrence] = []
    for event in events:
        result = expand_event(event, window, target_timezone)
        if not result.ok:
            return result
        occurrences.extend(result.value)
    return StageResult.success(occurrences)
