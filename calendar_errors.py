"""
calendar_errors.py
Failure taxonomy for a merge run and the success/failure value every stage
returns.

All failures are fatal for the run: the first failed stage stops the pipeline
and nothing is published.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class CalendarMergeError(Exception):
    """Base class for every failure that aborts a merge run."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} [{self.url}]"
        return self.message


class ConfigError(CalendarMergeError):
    """Missing or invalid configuration."""


class FetchError(CalendarMergeError):
    """A source URL could not be downloaded."""


class ParseError(CalendarMergeError):
    """A source returned text that is not usable iCalendar data."""


class RecurrenceRuleError(CalendarMergeError):
    """An RRULE could not be parsed or is not supported."""


class PublishError(CalendarMergeError):
    """The sink rejected the write."""


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one pipeline stage: either a value or the error that stopped it."""

    value: Optional[T] = None
    error: Optional[CalendarMergeError] = None

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CalendarMergeError) -> "StageResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the carried error for a failed stage."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
