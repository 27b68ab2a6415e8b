"""Shared instants for the test suite."""

from datetime import datetime, timedelta

# Monday 2026-10-19; courts open 08:00-17:00 Monday to Saturday
MONDAY = datetime(2026, 10, 19)


def at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    """Instant relative to MONDAY (day_offset=1 is Tuesday)."""
    return (MONDAY + timedelta(days=day_offset)).replace(hour=hour, minute=minute)


def slot(day_offset: int, start_hour: int, end_hour: int, minute: int = 0):
    """(start, end) strings for a booking on the given day."""
    return (
        at(day_offset, start_hour, minute).strftime('%Y-%m-%d %H:%M:%S'),
        at(day_offset, end_hour, minute).strftime('%Y-%m-%d %H:%M:%S'),
    )
