"""
Tests for the business calendar and payment deadline calculation.
"""

from datetime import date, time, timedelta

import pytest

from helpers import at
from models.calendar import BusinessCalendar
from models.deadline import compute_deadline

HOUR = timedelta(hours=1)


@pytest.fixture
def calendar():
    """Mon-Sat 08:00-17:00, Sunday closed."""
    return BusinessCalendar.standard()


class TestBusinessCalendar:
    """Tests for BusinessCalendar queries."""

    def test_operating_window_is_half_open(self, calendar):
        assert calendar.is_operating(at(0, 8))
        assert calendar.is_operating(at(0, 16, 59))
        assert not calendar.is_operating(at(0, 17))
        assert not calendar.is_operating(at(0, 7, 59))

    def test_sunday_closed(self, calendar):
        assert not calendar.is_working_day(at(6, 12).date())
        assert not calendar.is_operating(at(6, 12))

    def test_holiday_closed(self):
        cal = BusinessCalendar.standard(holidays=[at(1, 0).date()])
        assert not cal.is_working_day(at(1, 0).date())
        assert cal.is_working_day(at(2, 0).date())

    def test_recurring_holiday(self):
        cal = BusinessCalendar.standard(recurring_holidays=[(12, 25)])
        assert cal.is_holiday(date(2031, 12, 25))

    def test_next_open_skips_closed_days(self, calendar):
        """Saturday after close -> Monday opening (Sunday closed)."""
        assert calendar.next_operating_open(at(5, 18)) == at(7, 8)

    def test_next_open_same_day_before_opening(self, calendar):
        assert calendar.next_operating_open(at(0, 6)) == at(0, 8)

    def test_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            BusinessCalendar.standard(open_at=time(17, 0), close_at=time(8, 0))

    def test_no_operating_day_raises(self):
        cal = BusinessCalendar(tuple([None] * 7))
        with pytest.raises(ValueError):
            cal.next_operating_open(at(0, 10))


class TestComputeDeadline:
    """Tests for compute_deadline."""

    def test_inside_hours_adds_window(self, calendar):
        assert compute_deadline(at(0, 10), calendar, HOUR) == at(0, 11)

    def test_deadline_may_pass_closing_time(self, calendar):
        assert compute_deadline(at(0, 16, 30), calendar, HOUR) == at(0, 17, 30)

    def test_after_close_rolls_to_next_opening(self, calendar):
        """Rejected Monday 18:05 -> promoted reservation due Tuesday 09:00."""
        assert compute_deadline(at(0, 18, 5), calendar, HOUR) == at(1, 9)

    def test_before_opening_same_day(self, calendar):
        assert compute_deadline(at(0, 6, 45), calendar, HOUR) == at(0, 9)

    def test_skips_holiday(self):
        cal = BusinessCalendar.standard(holidays=[at(1, 0).date()])
        assert compute_deadline(at(0, 18), cal, HOUR) == at(2, 9)

    def test_never_earlier_than_window(self, calendar):
        now = at(0, 7)
        for minutes in range(0, 24 * 60 * 3, 37):
            instant = now + timedelta(minutes=minutes)
            assert compute_deadline(instant, calendar, HOUR) >= instant + HOUR

    def test_monotonic_in_now(self, calendar):
        previous = None
        for minutes in range(0, 24 * 60 * 8, 23):
            deadline = compute_deadline(at(0, 0) + timedelta(minutes=minutes), calendar, HOUR)
            if previous is not None:
                assert deadline >= previous
            previous = deadline


class TestLoadedCalendar:
    """Calendar snapshot built from the database."""

    def test_seeded_hours(self, app):
        from models.calendar import load_business_calendar

        with app.app_context():
            cal = load_business_calendar()
            assert cal.is_operating(at(0, 9))
            assert not cal.is_operating(at(6, 9))

    def test_added_holiday_is_loaded(self, app):
        from models.calendar import add_holiday, load_business_calendar

        with app.app_context():
            add_holiday(at(1, 0).date().isoformat(), 'Founders Day')
            cal = load_business_calendar()
            assert not cal.is_working_day(at(1, 0).date())

    def test_set_business_hours_validates(self, app):
        from models.calendar import set_business_hours

        with app.app_context():
            with pytest.raises(ValueError):
                set_business_hours(0, '18:00', '09:00')
            with pytest.raises(ValueError):
                set_business_hours(9, '08:00', '17:00')
