"""
Payment deadline calculation.

One rule serves both call sites (a freshly created unpaid reservation and a
reservation promoted from the waitlist); only the `now` passed in differs:
creation time or promotion time.

- Inside operating hours: now + window
- Outside (after close, before open, closed weekday, holiday):
  next opening instant + window
"""

from datetime import datetime, timedelta

from flask import current_app

from models.calendar import BusinessCalendar

DEFAULT_PAYMENT_WINDOW = timedelta(hours=1)


def get_payment_window() -> timedelta:
    """Payment window from PAYMENT_WINDOW_MINUTES (defaults to one hour)."""
    try:
        minutes = int(current_app.config.get('PAYMENT_WINDOW_MINUTES', 60))
    except RuntimeError:
        return DEFAULT_PAYMENT_WINDOW
    return timedelta(minutes=minutes)


def compute_deadline(now: datetime, calendar: BusinessCalendar,
                     window: timedelta = DEFAULT_PAYMENT_WINDOW) -> datetime:
    """
    Compute the payment deadline for a reservation created/promoted at `now`.

    Args:
        now: Local wall-clock instant of creation or promotion
        calendar: Business calendar snapshot
        window: Payment window (one hour by default)

    Returns:
        datetime: Deadline, always >= now + window
    """
    if calendar.is_operating(now):
        return now + window
    return calendar.next_operating_open(now) + window
