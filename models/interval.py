"""
Interval value object.

An interval is a half-open span [start, end) of absolute instants on one
court. `end` is always a full date+time, never a bare time of day, so an
interval that crosses midnight compares correctly with any other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from utils.datetime_helpers import format_instant, parse_instant
from utils.exceptions import ValidationError


@dataclass(frozen=True)
class Interval:
    """A court plus a [start, end) span of local wall-clock instants."""

    court_id: int
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.court_id is None:
            raise ValidationError("court_id is required")
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise ValidationError("start and end must be datetimes")
        if self.end <= self.start:
            raise ValidationError(
                f"Interval end ({self.end}) must be after start ({self.start})"
            )

    @classmethod
    def parse(cls, court_id, start, end) -> "Interval":
        """
        Build an interval from user input.

        Raises:
            ValidationError: If any part is missing or malformed
        """
        try:
            court = int(court_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid court id: {court_id!r}")
        try:
            start_at = parse_instant(start)
            end_at = parse_instant(end)
        except ValueError as e:
            raise ValidationError(f"Invalid instant: {e}")
        if start_at is None or end_at is None:
            raise ValidationError("start and end are required")
        return cls(court, start_at, end_at)

    @classmethod
    def from_row(cls, row) -> "Interval":
        """Build from a reservation or waitlist row (court_id, start_at, end_at)."""
        return cls(row['court_id'], parse_instant(row['start_at']), parse_instant(row['end_at']))

    def overlaps(self, other: "Interval") -> bool:
        """Open-interval overlap on the same court. Touching ends do not overlap."""
        return (
            self.court_id == other.court_id
            and self.start < other.end
            and other.start < self.end
        )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def start_str(self) -> str:
        return format_instant(self.start)

    @property
    def end_str(self) -> str:
        return format_instant(self.end)

    def as_dict(self) -> dict:
        return {'court_id': self.court_id, 'start': self.start_str, 'end': self.end_str}
