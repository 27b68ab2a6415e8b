"""
Test application factory, configuration and CLI commands.
"""

import pytest
from app import create_app


class TestAppFactory:
    """Test Flask application factory."""

    def test_create_app_development(self):
        """Test app creation with development config."""
        app = create_app('development')
        assert app is not None
        assert app.config['DEBUG'] is True
        assert app.config['TESTING'] is False

    def test_create_app_test(self):
        """Test app creation with test config."""
        app = create_app('test')
        assert app.config['TESTING'] is True
        assert app.config['LOCK_TIMEOUT_SECONDS'] == 2.0

    def test_production_requires_secret_key(self, monkeypatch):
        """Production refuses to start without proper secrets."""
        monkeypatch.delenv('SECRET_KEY', raising=False)
        with pytest.raises(ValueError):
            create_app('production')

    def test_app_has_api_blueprint(self):
        app = create_app('test')
        assert list(app.blueprints.keys()) == ['api']

    def test_app_has_extensions(self):
        """Test that extensions are initialized."""
        app = create_app('test')
        assert hasattr(app, 'login_manager')
        assert 'notifier' in app.extensions
        assert 'price_oracle' in app.extensions


class TestAppConfiguration:
    """Test application configuration."""

    def test_payment_window_default(self):
        app = create_app('test')
        assert app.config['PAYMENT_WINDOW_MINUTES'] == 60

    def test_app_name_set(self):
        app = create_app('test')
        assert app.config.get('APP_NAME') == 'CourtBook'


class TestCLICommands:
    """Test CLI commands."""

    def test_cli_commands_registered(self):
        app = create_app('test')
        commands = list(app.cli.commands.keys())

        for name in ('init-db', 'create-operator', 'set-hours', 'add-holiday',
                     'sweep', 'run-sweeper', 'reconcile'):
            assert name in commands

    def test_create_operator_prints_token(self, app):
        from models.operator import get_operator_by_username

        result = app.test_cli_runner().invoke(args=['create-operator', 'night', '--full-name', 'Night Desk'])
        assert result.exit_code == 0
        assert 'Token (shown once):' in result.output

        with app.app_context():
            assert get_operator_by_username('night')['full_name'] == 'Night Desk'

    def test_create_operator_duplicate_fails(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=['create-operator', 'night'])
        result = runner.invoke(args=['create-operator', 'night'])
        assert result.exit_code != 0
        assert 'already exists' in result.output

    def test_sweep_command(self, app, book):
        from helpers import slot

        with app.app_context():
            book(1, *slot(0, 15, 16))

        result = app.test_cli_runner().invoke(args=['sweep', '--now', '2026-10-19 12:00:00'])
        assert result.exit_code == 0
        assert 'Expired: 1' in result.output

    def test_reconcile_dry_run_command(self, app):
        result = app.test_cli_runner().invoke(args=['reconcile', '--dry-run'])
        assert result.exit_code == 0
        assert 'Repairable: 0, flagged: 0 (dry run)' in result.output

    def test_set_hours_command(self, app):
        from models.calendar import load_business_calendar
        from helpers import at

        runner = app.test_cli_runner()
        result = runner.invoke(args=['set-hours', '0', '06:00', '22:00'])
        assert result.exit_code == 0
        assert 'Weekday 0 open 06:00-22:00.' in result.output

        result = runner.invoke(args=['set-hours', '5', '--closed'])
        assert result.exit_code == 0

        with app.app_context():
            cal = load_business_calendar()
            assert cal.is_operating(at(0, 6, 30))
            assert not cal.is_working_day(at(5, 0).date())

    def test_set_hours_rejects_inverted_window(self, app):
        result = app.test_cli_runner().invoke(args=['set-hours', '0', '18:00', '09:00'])
        assert result.exit_code != 0
        assert 'Closing time must be after opening time' in result.output

    def test_add_holiday_command(self, app):
        from models.calendar import load_business_calendar
        from helpers import at

        runner = app.test_cli_runner()
        result = runner.invoke(args=['add-holiday', at(1, 0).date().isoformat(), 'Founders Day'])
        assert result.exit_code == 0
        assert 'Holiday added.' in result.output

        assert runner.invoke(args=['add-holiday', 'not-a-date', 'Nope']).exit_code != 0

        with app.app_context():
            assert not load_business_calendar().is_working_day(at(1, 0).date())
