"""
Database tests.
Tests database initialization, seed data and transaction behaviour.
"""

import pytest

from database import get_db


def test_database_tables(app):
    """Test that all required tables exist."""
    with app.app_context():
        cursor = get_db().cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        tables = [row[0] for row in cursor.fetchall()]

        required_tables = [
            'courts', 'business_hours', 'holidays', 'reservation_groups',
            'reservations', 'waitlist_entries', 'app_config', 'status_history',
            'audit_log', 'operators', 'sweeper_lease'
        ]

        for table in required_tables:
            assert table in tables, f"Table {table} should exist"


def test_seed_data(app):
    """Test that seed data was created correctly."""
    with app.app_context():
        cursor = get_db().cursor()

        cursor.execute("SELECT COUNT(*) FROM courts WHERE active = 1")
        assert cursor.fetchone()[0] == 3, "Should have 3 active courts"

        cursor.execute("SELECT weekday FROM business_hours WHERE is_operational = 0")
        assert [row[0] for row in cursor.fetchall()] == [6], "Only Sunday should be closed"

        cursor.execute("SELECT value FROM app_config WHERE key = 'promotion_policy'")
        assert cursor.fetchone()[0] == 'broadcast'


def test_interval_check_constraint(app):
    """end_at must be after start_at even for rows written outside the engine."""
    import sqlite3

    with app.app_context():
        db = get_db()
        with pytest.raises(sqlite3.IntegrityError):
            db.execute('''
                INSERT INTO reservations (requester_id, court_id, start_at, end_at, created_at)
                VALUES (1, 1, '2026-10-19 11:00:00', '2026-10-19 10:00:00', '2026-10-19 09:00:00')
            ''')
        db.rollback()


def test_transaction_rolls_back(app):
    """An exception inside transaction() leaves no trace."""
    from database import transaction

    with app.app_context():
        with pytest.raises(RuntimeError):
            with transaction() as db:
                db.execute("INSERT INTO holidays (holiday_date, name) VALUES ('2026-12-25', 'Christmas')")
                raise RuntimeError('abort')

        assert get_db().execute('SELECT COUNT(*) FROM holidays').fetchone()[0] == 0


def test_config_getters(app):
    """Runtime settings stored in app_config."""
    from models.config import get_config_bool, is_waitlist_enabled, set_config

    with app.app_context():
        assert is_waitlist_enabled() is True
        set_config('waitlist_enabled', 'no')
        assert is_waitlist_enabled() is False
        assert get_config_bool('missing_key', True) is True
