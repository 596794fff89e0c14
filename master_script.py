#!/usr/bin/env python3
"""
master_script.py

Cron-safe workflow, one full regeneration per run:
  1) Work out today's window (local midnight → end of the same day next year)
  2) Download every source calendar at once; any failure stops the run
  3) Expand recurring events into the window, resolve timezones, merge in
     source order
  4) Render one .ics file and publish it as <slug of calendar name>.ics

Requires:
  pip install requests icalendar python-dateutil python-dotenv boto3

Config (.env beside this file): see merge_config.py and publish_calendar.py.
"""
from __future__ import annotations

import argparse
import datetime as _dt
import os
import sys
from pathlib import Path
from typing import Optional

from calendar_errors import CalendarMergeError, StageResult
from calendar_models import compute_window
from download_calendars import FetchFn, fetch_all_sources, fetch_source
from merge_calendars import build_merged_calendar
from merge_config import ENV_FILE, MergeConfig, load_config
from publish_calendar import PublishSink, sink_from_env
from render_calendar import CONTENT_TYPE, calendar_filename, render_calendar


def run_merge(
    config: MergeConfig,
    sink: PublishSink,
    fetch: FetchFn = fetch_source,
    now: Optional[_dt.datetime] = None,
) -> StageResult[str]:
    """Fetch, merge and publish once. Nothing is published unless every stage succeeds."""
    window = compute_window(config.timezone, now)

    fetched = fetch_all_sources(config.sources, fetch=fetch)
    if not fetched.ok:
        return StageResult.failure(fetched.error)
    print(f"✅ Downloaded {len(config.sources)} calendar(s).")

    merged = build_merged_calendar(config.calendar_name, config.timezone, fetched.value, window)
    if not merged.ok:
        return StageResult.failure(merged.error)
    print(f"✅ Merged {len(merged.value)} event(s) for “{config.calendar_name}”.")

    body = render_calendar(merged.value, stamp=now)
    key = calendar_filename(config.calendar_name)
    print(f"→ Publishing {key} …")
    published = sink.put_object(
        bucket=config.bucket,
        key=key,
        body=body,
        content_type=CONTENT_TYPE,
        public_read=True,
    )
    if not published.ok:
        return published
    return StageResult.success(key)


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Merge .ics feeds into one calendar and publish it.")
    ap.add_argument("--json", type=Path, default=None,
                    help="Path to calendar_sources.json (default: $CALENDAR_SOURCES)")
    ap.add_argument("--env-file", type=Path, default=ENV_FILE, help="Path to the .env file")
    ap.add_argument("--sink", default=None, help="github or folder (default: $PUBLISH_SINK)")
    ap.add_argument("--folder", default=None, help="Output folder for the folder sink")
    args = ap.parse_args(argv)

    try:
        config = load_config(args.json, args.env_file)
        sink = sink_from_env(args.sink or os.getenv("PUBLISH_SINK"), args.folder)
    except CalendarMergeError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1

    result = run_merge(config, sink)
    if not result.ok:
        print(f"❌ {type(result.error).__name__}: {result.error}", file=sys.stderr)
        return 1

    print(f"🎉 Completed: published {result.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
