"""
Tests for operator accounts and bearer-token authentication.
"""

import pytest

from utils.exceptions import ValidationError


class TestCreateOperator:
    """Tests for create_operator."""

    def test_token_is_stored_hashed(self, app):
        from models.operator import create_operator, get_operator_by_id

        with app.app_context():
            operator_id, token = create_operator('desk')
            operator = get_operator_by_id(operator_id)
            assert token
            assert operator['token_hash'] != token

    def test_duplicate_username(self, app):
        from models.operator import create_operator

        with app.app_context():
            create_operator('desk')
            with pytest.raises(ValidationError):
                create_operator('desk')


class TestAuthenticateToken:
    """Tests for authenticate_token."""

    def test_valid_token(self, app):
        from models.operator import authenticate_token, create_operator, get_operator_by_username

        with app.app_context():
            create_operator('desk', token='s3cret')
            operator = authenticate_token('Bearer desk:s3cret')
            assert operator.username == 'desk'
            assert get_operator_by_username('desk')['last_seen'] is not None

    @pytest.mark.parametrize('header', [
        None,
        '',
        'Basic ZGVzazpzM2NyZXQ=',
        'Bearer desk',
        'Bearer desk:wrong',
        'Bearer nobody:s3cret',
    ])
    def test_rejected_headers(self, app, header):
        from models.operator import authenticate_token, create_operator

        with app.app_context():
            create_operator('desk', token='s3cret')
            assert authenticate_token(header) is None

    def test_inactive_operator(self, app):
        from database import get_db
        from models.operator import authenticate_token, create_operator

        with app.app_context():
            create_operator('desk', token='s3cret')
            db = get_db()
            db.execute("UPDATE operators SET active = 0 WHERE username = 'desk'")
            db.commit()
            assert authenticate_token('Bearer desk:s3cret') is None

    def test_locked_database_raises_busy(self, app):
        import sqlite3
        from models.operator import authenticate_token, create_operator
        from utils.exceptions import BusyError

        with app.app_context():
            create_operator('desk', token='s3cret')

        app.config['LOCK_TIMEOUT_SECONDS'] = 0.1
        other = sqlite3.connect(app.config['DATABASE_PATH'], timeout=0.1, isolation_level=None)
        other.execute('BEGIN IMMEDIATE')
        try:
            with app.app_context():
                with pytest.raises(BusyError):
                    authenticate_token('Bearer desk:s3cret')
        finally:
            other.execute('ROLLBACK')
            other.close()
