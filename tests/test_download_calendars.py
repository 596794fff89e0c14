import datetime as _dt
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import requests

import download_calendars
from calendar_errors import FetchError, ParseError, StageResult
from calendar_models import CalendarSource, RawEvent, Window
from download_calendars import fetch_all_sources, fetch_source, parse_calendar
from expand_recurrences import expand_event

SAMPLE = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//Test//EN",
    "BEGIN:VEVENT",
    "UID:zoned",
    "SUMMARY:Planning",
    "DESCRIPTION:Quarterly planning",
    "LOCATION:Madrid office",
    "DTSTART;TZID=Europe/Madrid:20240305T100000",
    "DTEND;TZID=Europe/Madrid:20240305T113000",
    "RRULE:FREQ=WEEKLY;BYDAY=TU,TH",
    "END:VEVENT",
    "BEGIN:VTODO",
    "UID:todo",
    "SUMMARY:Not an event",
    "END:VTODO",
    "BEGIN:VEVENT",
    "UID:utc",
    "SUMMARY:Call",
    "DTSTART:20240306T150000Z",
    "DTEND:20240306T153000Z",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:floating",
    "SUMMARY:Gym",
    "DTSTART:20240307T070000",
    "DURATION:PT45M",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:allday",
    "SUMMARY:Holiday",
    "DTSTART;VALUE=DATE:20240308",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:zoned",
    "RECURRENCE-ID;TZID=Europe/Madrid:20240312T100000",
    "SUMMARY:Planning (moved)",
    "DTSTART;TZID=Europe/Madrid:20240312T120000",
    "DTEND;TZID=Europe/Madrid:20240312T133000",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:zero",
    "SUMMARY:Reminder",
    "DTSTART:20240309T090000Z",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


def _by_uid(events):
    return {event.uid: event for event in events}


def test_parse_reads_only_vevents_in_order():
    events = parse_calendar(SAMPLE).value
    assert [e.uid for e in events] == ["zoned", "utc", "floating", "allday"]


def test_parse_keeps_zone_per_field():
    zoned = _by_uid(parse_calendar(SAMPLE).value)["zoned"]
    assert zoned.start == _dt.datetime(2024, 3, 5, 10, 0)
    assert zoned.end == _dt.datetime(2024, 3, 5, 11, 30)
    assert zoned.start_timezone == "Europe/Madrid"
    assert zoned.end_timezone == "Europe/Madrid"
    assert zoned.summary == "Planning"
    assert zoned.description == "Quarterly planning"
    assert zoned.location == "Madrid office"


def test_parse_keeps_rule_text():
    zoned = _by_uid(parse_calendar(SAMPLE).value)["zoned"]
    assert zoned.recurrence_rule_text.startswith("FREQ=WEEKLY")
    assert "BYDAY=TU,TH" in zoned.recurrence_rule_text
    assert zoned.is_recurring


def test_parse_utc_and_floating_values():
    events = _by_uid(parse_calendar(SAMPLE).value)
    assert events["utc"].start == _dt.datetime(2024, 3, 6, 15, 0)
    assert events["utc"].start_timezone == "UTC"
    assert events["floating"].start_timezone is None
    assert events["floating"].end == _dt.datetime(2024, 3, 7, 7, 45)
    assert events["floating"].description is None
    assert not events["floating"].is_recurring


def test_parse_all_day_event_spans_one_day():
    holiday = _by_uid(parse_calendar(SAMPLE).value)["allday"]
    assert holiday.start == _dt.datetime(2024, 3, 8)
    assert holiday.end == _dt.datetime(2024, 3, 9)
    assert holiday.start_timezone is None


def test_parse_skips_zero_length_event(capsys):
    events = _by_uid(parse_calendar(SAMPLE).value)
    assert "zero" not in events
    assert "non-positive duration" in capsys.readouterr().err


def test_parse_rejects_malformed_text():
    result = parse_calendar(b"this is not a calendar", url="https://example.com/bad.ics")
    assert not result.ok
    assert isinstance(result.error, ParseError)
    assert result.error.url == "https://example.com/bad.ics"


def test_fetch_source_parses_download(monkeypatch):
    def fake_get(url, headers, timeout):
        return SimpleNamespace(content=SAMPLE.encode(), raise_for_status=lambda: None)

    monkeypatch.setattr(download_calendars.requests, "get", fake_get)
    result = fetch_source(CalendarSource(url="https://example.com/a.ics", order=0))
    assert result.ok
    assert len(result.value) == 4


def test_fetch_source_http_error_is_fetch_error(monkeypatch):
    def raise_500():
        raise requests.HTTPError("500 Server Error")

    monkeypatch.setattr(
        download_calendars.requests, "get",
        lambda url, headers, timeout: SimpleNamespace(content=b"", raise_for_status=raise_500),
    )
    result = fetch_source(CalendarSource(url="https://example.com/a.ics", order=0))
    assert isinstance(result.error, FetchError)


def _event(uid):
    start = _dt.datetime(2024, 3, 5, 9, 0)
    return RawEvent(uid=uid, summary=uid, start=start, end=start + _dt.timedelta(hours=1))


def test_fetch_all_keeps_source_order():
    sources = [
        CalendarSource(url="https://example.com/second.ics", order=1),
        CalendarSource(url="https://example.com/first.ics", order=0),
    ]

    def fake_fetch(source):
        return StageResult.success([_event(source.url.rsplit("/", 1)[-1])])

    result = fetch_all_sources(sources, fetch=fake_fetch)
    assert [[e.uid for e in events] for events in result.value] == [["first.ics"], ["second.ics"]]


def test_fetch_all_is_all_or_nothing():
    calls = []

    def fake_fetch(source):
        calls.append(source.order)
        if source.order == 1:
            return StageResult.failure(FetchError("HTTP 500", url=source.url))
        return StageResult.success([_event("ok")])

    sources = [CalendarSource(url=f"https://example.com/{i}.ics", order=i) for i in range(3)]
    result = fetch_all_sources(sources, fetch=fake_fetch)
    assert not result.ok
    assert result.error.url == "https://example.com/1.ics"
    assert sorted(calls) == [0, 1, 2]


OUTLOOK = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//Microsoft Corporation//Outlook 16.0 MIMEDIR//EN",
    "BEGIN:VEVENT",
    "UID:outlook-weekly",
    "SUMMARY:Jour fixe",
    "DTSTART;TZID=W. Europe Standard Time:20240104T100000",
    "DTEND;TZID=W. Europe Standard Time:20240104T110000",
    "RRULE:FREQ=WEEKLY;BYDAY=TH",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


def test_windows_tzid_keeps_local_time_after_dst():
    event = parse_calendar(OUTLOOK).value[0]
    assert event.start == _dt.datetime(2024, 1, 4, 10, 0)
    assert event.start_timezone == "Europe/Berlin"

    june = Window(
        start=_dt.datetime(2024, 6, 1, tzinfo=_dt.timezone.utc),
        end=_dt.datetime(2024, 7, 1, tzinfo=_dt.timezone.utc),
    )
    occurrences = expand_event(event, june, "Europe/Berlin").value
    berlin = ZoneInfo("Europe/Berlin")
    assert [o.start.astimezone(berlin).hour for o in occurrences] == [10, 10, 10, 10]
    assert all(o.start.astimezone(berlin).weekday() == 3 for o in occurrences)


def test_parse_warns_about_skipped_override(capsys):
    parse_calendar(SAMPLE)
    assert "Skipping override of recurring event 'zoned'" in capsys.readouterr().err


def test_unexpected_parser_failure_is_parse_error(monkeypatch):
    def explode(prop):
        raise RuntimeError("parser bug")

    monkeypatch.setattr(download_calendars, "_wall_clock", explode)
    result = parse_calendar(SAMPLE, url="https://example.com/a.ics")
    assert isinstance(result.error, ParseError)
    assert "parser bug" in str(result.error)


def test_crashing_fetch_becomes_failure():
    def crashing_fetch(source):
        raise RuntimeError("boom")

    result = fetch_all_sources([CalendarSource(url="https://example.com/a.ics", order=0)],
                               fetch=crashing_fetch)
    assert isinstance(result.error, FetchError)
    assert result.error.url == "https://example.com/a.ics"
