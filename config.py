"""
CourtBook configuration.

Values come from the environment (a local .env is loaded by create_app).
Business settings that operators change at runtime (waitlist on/off,
promotion policy) live in the app_config table instead; see models/config.py.
"""

import os


def _env(name, default, cast=str):
    value = os.environ.get(name)
    return cast(value) if value not in (None, '') else default


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = _env('SECRET_KEY', 'dev-secret-key-change-in-production')
    DATABASE_PATH = _env('DATABASE_PATH', 'instance/courtbook.db')

    # Wall-clock zone for business hours and payment deadlines
    TIMEZONE = _env('TIMEZONE', 'Asia/Manila')

    # Max wait for a court lock or the SQLite write lock before BusyError
    LOCK_TIMEOUT_SECONDS = _env('LOCK_TIMEOUT_SECONDS', 5.0, float)

    PAYMENT_WINDOW_MINUTES = _env('PAYMENT_WINDOW_MINUTES', 60, int)

    SWEEP_INTERVAL_SECONDS = _env('SWEEP_INTERVAL_SECONDS', 60, int)
    # A crashed sweeper's lease is taken over after this long
    SWEEPER_LEASE_SECONDS = _env('SWEEPER_LEASE_SECONDS', 300, int)

    APP_NAME = 'CourtBook'
    APP_VERSION = '1.0.0'


class DevelopmentConfig(Config):
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    DEBUG = False
    TESTING = False

    @classmethod
    def validate(cls) -> None:
        """Refuse to start with the development secret or an implicit database path."""
        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable must be set in production")
        if len(secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters in production")
        if not os.environ.get('DATABASE_PATH'):
            raise ValueError("DATABASE_PATH environment variable must be set in production")


class TestConfig(Config):
    TESTING = True
    DEBUG = True
    DATABASE_PATH = ':memory:'
    SECRET_KEY = 'test-secret-key'
    LOCK_TIMEOUT_SECONDS = 2.0
    PAYMENT_WINDOW_MINUTES = 60


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'test': TestConfig,
    'default': DevelopmentConfig
}
