"""
merge_calendars.py
Turn every source's events into one merged calendar.

Order of the output is source order, then event order inside a source, then
generation order inside a recurring event. Nothing is sorted, deduplicated or
checked for overlaps.
"""
from __future__ import annotations

from typing import List, Sequence

from calendar_errors import StageResult
from calendar_models import MergedCalendar, Occurrence, RawEvent, Window
from expand_recurrences import expand_events


def merge_occurrences(
    calendar_name: str,
    target_timezone: str,
    per_source: Sequence[Sequence[Occurrence]],
) -> StageResult[MergedCalendar]:
    """Concatenate per-source occurrence lists in the order given."""
    merged: List[Occurrence] = []
    for occurrences in per_source:
        merged.extend(occurrences)
    return StageResult.success(
        MergedCalendar(name=calendar_name, target_timezone=target_timezone, occurrences=tuple(merged))
    )


def build_merged_calendar(
    calendar_name: str,
    target_timezone: str,
    per_source_events: Sequence[Sequence[RawEvent]],
    window: Window,
) -> StageResult[MergedCalendar]:
    """Expand, normalise and merge all sources; the first failure aborts the whole merge."""
    per_source: List[List[Occurrence]] = []
    for events in per_source_events:
        expanded = expand_events(list(events), window, target_timezone)
        if not expanded.ok:
            return StageResult.failure(expanded.error)
        per_source.append(expanded.value)
    return merge_occurrences(calendar_name, target_timezone, per_source)
