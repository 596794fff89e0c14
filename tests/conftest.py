import datetime as _dt

import pytest

from calendar_errors import StageResult
from calendar_models import RawEvent, Window

UTC = _dt.timezone.utc


@pytest.fixture
def make_event():
    """Factory for RawEvent with sensible defaults."""

    def _make(uid="evt-1", summary="Meeting", start=_dt.datetime(2024, 3, 5, 9, 0),
              end=None, rule=None, start_tz=None, end_tz=None, **kwargs):
        if end is None:
            end = start + _dt.timedelta(hours=1)
        return RawEvent(
            uid=uid,
            summary=summary,
            start=start,
            end=end,
            recurrence_rule_text=rule,
            start_timezone=start_tz,
            end_timezone=end_tz,
            **kwargs,
        )

    return _make


@pytest.fixture
def window():
    """[2024-03-01, 2025-03-01) in UTC."""
    return Window(
        start=_dt.datetime(2024, 3, 1, tzinfo=UTC),
        end=_dt.datetime(2025, 3, 1, tzinfo=UTC),
    )


class RecordingSink:
    """PublishSink stand-in that remembers every put_object call."""

    def __init__(self, result=None):
        self.calls = []
        self.result = result

    def put_object(self, bucket, key, body, content_type, public_read):
        self.calls.append(
            {"bucket": bucket, "key": key, "body": body,
             "content_type": content_type, "public_read": public_read}
        )
        return self.result or StageResult.success(key)


@pytest.fixture
def recording_sink():
    return RecordingSink()
