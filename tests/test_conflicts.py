"""
Tests for interval overlap and conflict detection.
"""

import pytest

from helpers import slot
from models.interval import Interval
from utils.exceptions import ValidationError


class TestInterval:
    """Tests for the Interval value object."""

    def test_touching_intervals_do_not_overlap(self):
        a = Interval.parse(1, '2026-10-19 10:00:00', '2026-10-19 11:00:00')
        b = Interval.parse(1, '2026-10-19 11:00:00', '2026-10-19 12:00:00')
        assert not a.overlaps(b)
        assert not b.overlaps(a)

    def test_different_courts_do_not_overlap(self):
        a = Interval.parse(1, '2026-10-19 10:00:00', '2026-10-19 11:00:00')
        b = Interval.parse(2, '2026-10-19 10:00:00', '2026-10-19 11:00:00')
        assert not a.overlaps(b)

    def test_overlap_across_midnight(self):
        """23:00-01:00 and 00:30-01:30 overlap as instants, not times of day."""
        a = Interval.parse(1, '2026-10-19 23:00:00', '2026-10-20 01:00:00')
        b = Interval.parse(1, '2026-10-20 00:30:00', '2026-10-20 01:30:00')
        assert a.overlaps(b)
        assert b.overlaps(a)

    def test_iso_input_accepted(self):
        interval = Interval.parse('1', '2026-10-19T10:00', '2026-10-19T11:00')
        assert interval.start_str == '2026-10-19 10:00:00'

    @pytest.mark.parametrize('start,end', [
        ('2026-10-19 11:00:00', '2026-10-19 10:00:00'),
        ('2026-10-19 10:00:00', '2026-10-19 10:00:00'),
        ('not a date', '2026-10-19 10:00:00'),
        (None, '2026-10-19 10:00:00'),
    ])
    def test_invalid_interval_rejected(self, start, end):
        with pytest.raises(ValidationError):
            Interval.parse(1, start, end)


class TestConflictQueries:
    """Tests for find_blocking and find_provisional_conflicts."""

    def test_confirmed_reservation_blocks(self, app, book, confirm):
        from database import get_db
        from models.conflicts import find_blocking, find_provisional_conflicts

        with app.app_context():
            result = book(1, *slot(0, 10, 11))
            confirm(result['group_id'])

            cursor = get_db().cursor()
            probe = Interval.parse(1, *slot(0, 10, 11, minute=30))
            blocker = find_blocking(cursor, probe)
            assert blocker['id'] == result['reservation']['id']
            assert find_provisional_conflicts(cursor, probe) == []

    def test_provisional_reservation_does_not_block(self, app, book):
        from database import get_db
        from models.conflicts import find_blocking, find_provisional_conflicts

        with app.app_context():
            result = book(1, *slot(0, 10, 11))
            cursor = get_db().cursor()
            probe = Interval.parse(1, *slot(0, 10, 11))
            assert find_blocking(cursor, probe) is None
            conflicts = find_provisional_conflicts(cursor, probe)
            assert [c['id'] for c in conflicts] == [result['reservation']['id']]

    def test_cross_midnight_conflict_detected(self, app, book):
        from database import get_db
        from models.conflicts import find_provisional_conflicts

        with app.app_context():
            book(1, '2026-10-19 23:00:00', '2026-10-20 01:00:00')
            cursor = get_db().cursor()
            probe = Interval.parse(1, '2026-10-20 00:30:00', '2026-10-20 01:30:00')
            assert len(find_provisional_conflicts(cursor, probe)) == 1

    def test_released_reservation_is_ignored(self, app, book):
        from database import get_db
        from models.admission import cancel_group
        from models.conflicts import find_blocking, find_provisional_conflicts

        with app.app_context():
            result = book(1, *slot(0, 10, 11))
            cancel_group(result['group_id'])
            cursor = get_db().cursor()
            probe = Interval.parse(1, *slot(0, 10, 11))
            assert find_blocking(cursor, probe) is None
            assert find_provisional_conflicts(cursor, probe) == []

    def test_exclude_group(self, app, book):
        from database import get_db
        from models.conflicts import find_provisional_conflicts

        with app.app_context():
            result = book(1, *slot(0, 10, 11))
            cursor = get_db().cursor()
            probe = Interval.parse(1, *slot(0, 10, 11))
            assert find_provisional_conflicts(cursor, probe, exclude_group_id=result['group_id']) == []
