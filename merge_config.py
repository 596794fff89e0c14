"""
merge_config.py
Build the immutable run configuration from the environment (.env beside this
file) and the JSON list of calendar sources.

Config (.env beside this file):
  CALENDAR_NAME=JohnDoe is EXTRAORDINARILY BUSY
  CALENDAR_TIMEZONE=Europe/Madrid
  CALENDAR_SOURCES=calendar_sources.json
  CALENDAR_URLS=            # optional, one URL per line; overrides the JSON file
  PUBLISH_BUCKET=username/reponame

calendar_sources.json:
  [
    {"Name": "Personal", "URL": "https://…/personal.ics", "Enabled": true},
    {"Name": "Work",     "URL": "webcal://…/work.ics",    "Enabled": true}
  ]
Order of the enabled entries is the order of the merged output.
"""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from calendar_errors import ConfigError
from calendar_models import CalendarSource

HERE = Path(__file__).resolve().parent
ENV_FILE = HERE / ".env"
JSON_SOURCES_DEFAULT = HERE / "calendar_sources.json"

DEFAULT_NAME = "Merged Calendar"
DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True)
class MergeConfig:
    calendar_name: str
    timezone: str
    sources: Tuple[CalendarSource, ...]
    bucket: str = ""


def normalise_url(raw_url: str) -> str:
    """Strip any leading text before the first literal http; webcal:// becomes https://."""
    raw_url = re.sub(r"^\s*webcal://", "https://", raw_url.strip(), flags=re.IGNORECASE)
    pos = raw_url.find("http")
    if pos == -1:
        raise ValueError(f"Invalid URL string: {raw_url!r}")
    return raw_url[pos:]


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone {name!r}") from e
    return name


def sources_from_urls(urls: List[str]) -> Tuple[CalendarSource, ...]:
    sources = []
    for raw in urls:
        if not raw.strip():
            continue
        try:
            url = normalise_url(raw)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        sources.append(CalendarSource(url=url, order=len(sources)))
    return tuple(sources)


def load_sources(json_path: Path) -> Tuple[CalendarSource, ...]:
    """Read enabled entries of the JSON sources file, keeping their order."""
    try:
        with json_path.open(encoding="utf-8") as fh:
            entries = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read sources file {json_path}: {e}") from e
    if not isinstance(entries, list):
        raise ConfigError(f"{json_path} must contain a JSON list of sources")

    sources = []
    for entry in entries:
        if not entry.get("Enabled", False):
            continue
        name = entry.get("Name", "Unnamed")
        try:
            url = normalise_url(entry["URL"])
        except (KeyError, ValueError) as e:
            raise ConfigError(f"Bad source {name!r}: {e}") from e
        sources.append(CalendarSource(url=url, order=len(sources), name=name))
    return tuple(sources)


def load_config(json_path: Optional[Path] = None, env_file: Optional[Path] = None) -> MergeConfig:
    load_dotenv(dotenv_path=env_file or ENV_FILE)

    name = os.getenv("CALENDAR_NAME", DEFAULT_NAME).strip() or DEFAULT_NAME
    timezone = validate_timezone(os.getenv("CALENDAR_TIMEZONE", DEFAULT_TIMEZONE).strip())

    raw_urls = os.getenv("CALENDAR_URLS", "")
    if raw_urls.strip():
        sources = sources_from_urls(raw_urls.splitlines())
    else:
        if json_path is None:
            json_path = Path(os.getenv("CALENDAR_SOURCES", str(JSON_SOURCES_DEFAULT)))
        sources = load_sources(json_path)

    if not sources:
        raise ConfigError("No enabled calendar sources configured")

    return MergeConfig(
        calendar_name=name,
        timezone=timezone,
        sources=sources,
        bucket=os.getenv("PUBLISH_BUCKET", "").strip(),
    )
