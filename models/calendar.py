"""
Business calendar.

Immutable snapshot of operating hours and holidays. Deadline math receives
the snapshot as an argument instead of reading settings, so it is a pure
function that can be replayed in tests without a clock or a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, Optional, Tuple

from database import get_db

WEEKDAY_NAMES = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

# Upper bound when searching forward for the next operating day.
MAX_LOOKAHEAD_DAYS = 400

DayWindow = Optional[Tuple[time, time]]


def _parse_hhmm(value: str) -> time:
    """Parse 'HH:MM' (or 'HH:MM:SS') into a time."""
    parts = [int(p) for p in str(value).strip().split(':')]
    while len(parts) < 3:
        parts.append(0)
    return time(parts[0], parts[1], parts[2])


@dataclass(frozen=True)
class BusinessCalendar:
    """
    Operating hours per weekday plus holidays.

    Attributes:
        weekly_hours: 7 entries, Monday first; each (open, close) or None when closed
        holidays: Specific non-operating dates
        recurring_holidays: (month, day) pairs closed every year
    """

    weekly_hours: Tuple[DayWindow, ...]
    holidays: FrozenSet[date] = field(default_factory=frozenset)
    recurring_holidays: FrozenSet[Tuple[int, int]] = field(default_factory=frozenset)

    def __post_init__(self):
        if len(self.weekly_hours) != 7:
            raise ValueError("weekly_hours needs exactly 7 entries (Monday..Sunday)")
        for window in self.weekly_hours:
            if window is not None and window[1] <= window[0]:
                raise ValueError(f"Closing time must be after opening time: {window}")

    @classmethod
    def standard(cls, open_at: time = time(8, 0), close_at: time = time(17, 0),
                 closed_weekdays: Tuple[int, ...] = (6,), holidays=(), recurring_holidays=()):
        """Same window every operating day; Sunday closed by default."""
        hours = tuple(None if wd in closed_weekdays else (open_at, close_at) for wd in range(7))
        return cls(hours, frozenset(holidays), frozenset(recurring_holidays))

    # -------------------------------------------------------------------------
    # Day-level queries
    # -------------------------------------------------------------------------

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays or (day.month, day.day) in self.recurring_holidays

    def is_working_day(self, day: date) -> bool:
        """Operational weekday that is not a holiday."""
        return self.weekly_hours[day.weekday()] is not None and not self.is_holiday(day)

    def window_for(self, day: date) -> Optional[Tuple[datetime, datetime]]:
        """Opening and closing instants of a day, or None if closed."""
        if not self.is_working_day(day):
            return None
        open_at, close_at = self.weekly_hours[day.weekday()]
        return datetime.combine(day, open_at), datetime.combine(day, close_at)

    # -------------------------------------------------------------------------
    # Instant-level queries
    # -------------------------------------------------------------------------

    def is_operating(self, instant: datetime) -> bool:
        """True iff the instant falls in [open, close) of a working day."""
        window = self.window_for(instant.date())
        return window is not None and window[0] <= instant < window[1]

    def next_operating_open(self, instant: datetime) -> datetime:
        """
        Smallest opening instant strictly after `instant`.

        Raises:
            ValueError: If no working day exists within MAX_LOOKAHEAD_DAYS
        """
        day = instant.date()
        for offset in range(MAX_LOOKAHEAD_DAYS + 1):
            window = self.window_for(day + timedelta(days=offset))
            if window is not None and window[0] > instant:
                return window[0]
        raise ValueError(f"No operating day within {MAX_LOOKAHEAD_DAYS} days of {instant}")


# =============================================================================
# LOADING
# =============================================================================

def load_business_calendar() -> BusinessCalendar:
    """
    Build a calendar snapshot from business_hours and holidays.

    Weekdays missing from business_hours are treated as closed.

    Returns:
        BusinessCalendar: Immutable snapshot for this call
    """
    db = get_db()
    cursor = db.cursor()

    cursor.execute('SELECT weekday, open_time, close_time, is_operational FROM business_hours')
    hours = [None] * 7
    for row in cursor.fetchall():
        if row['is_operational']:
            hours[row['weekday']] = (_parse_hhmm(row['open_time']), _parse_hhmm(row['close_time']))

    cursor.execute('SELECT holiday_date, is_recurring FROM holidays')
    fixed = set()
    recurring = set()
    for row in cursor.fetchall():
        value = row['holiday_date']
        day = value if isinstance(value, date) else date.fromisoformat(str(value))
        if row['is_recurring']:
            recurring.add((day.month, day.day))
        else:
            fixed.add(day)

    return BusinessCalendar(tuple(hours), frozenset(fixed), frozenset(recurring))


# =============================================================================
# CALENDAR MAINTENANCE
# =============================================================================

def set_business_hours(weekday: int, open_time: str, close_time: str, is_operational: bool = True) -> bool:
    """
    Set the operating window of one weekday.

    Args:
        weekday: 0 = Monday .. 6 = Sunday
        open_time: 'HH:MM'
        close_time: 'HH:MM'
        is_operational: False closes the weekday

    Returns:
        bool: True if saved

    Raises:
        ValueError: If the weekday or window is invalid
    """
    if weekday not in range(7):
        raise ValueError(f"Invalid weekday: {weekday}")
    if _parse_hhmm(close_time) <= _parse_hhmm(open_time):
        raise ValueError("Closing time must be after opening time")

    db = get_db()
    cursor = db.cursor()
    cursor.execute('''
        INSERT INTO business_hours (weekday, open_time, close_time, is_operational)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(weekday) DO UPDATE SET
            open_time = excluded.open_time,
            close_time = excluded.close_time,
            is_operational = excluded.is_operational,
            updated_at = CURRENT_TIMESTAMP
    ''', (weekday, open_time, close_time, 1 if is_operational else 0))
    db.commit()
    return True


def add_holiday(holiday_date: str, name: str, is_recurring: bool = False) -> int:
    """
    Add a holiday.

    Args:
        holiday_date: Date string (YYYY-MM-DD)
        name: Holiday name
        is_recurring: Repeat on the same month/day every year

    Returns:
        int: New holiday ID
    """
    date.fromisoformat(holiday_date)
    db = get_db()
    cursor = db.cursor()
    cursor.execute('''
        INSERT INTO holidays (holiday_date, name, is_recurring)
        VALUES (?, ?, ?)
    ''', (holiday_date, name, 1 if is_recurring else 0))
    db.commit()
    return cursor.lastrowid
