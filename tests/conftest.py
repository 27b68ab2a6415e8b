"""
Pytest configuration and fixtures.
Every test gets its own database file, never the production database.
"""

import os
import pytest

from helpers import at

os.environ['FLASK_ENV'] = 'test'

OPERATOR_TOKEN = 'test-operator-token'


@pytest.fixture
def app(tmp_path):
    """Create test application with an isolated database file."""
    from app import create_app
    from database import init_db

    app = create_app('test')
    app.config['TESTING'] = True
    app.config['DATABASE_PATH'] = str(tmp_path / 'courtbook_test.db')

    with app.app_context():
        init_db()

    yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def operator_headers(app):
    """Authorization header of a freshly created operator."""
    from models.operator import create_operator

    with app.app_context():
        create_operator('desk', full_name='Front Desk', token=OPERATOR_TOKEN)
    return {'Authorization': f'Bearer desk:{OPERATOR_TOKEN}'}


@pytest.fixture
def notifications(app):
    """Record delivered notifications instead of logging them."""
    from extensions import notifier

    sent = []
    notifier.init_app(app, backend=lambda requester_id, kind, payload: sent.append(
        {'requester_id': requester_id, 'kind': kind, 'payload': payload}
    ))
    yield sent
    notifier.init_app(app)


@pytest.fixture
def book(app):
    """Book a court interval at a fixed instant (Monday 10:00 by default)."""
    from models.admission import attempt_booking

    def _book(requester_id, start, end, court_id=1, now=None, group_id=None):
        return attempt_booking(requester_id, court_id, start, end,
                               group_id=group_id, now=now or at(0, 10))

    return _book


@pytest.fixture
def confirm(app):
    """Approve and pay a group so its reservations become Confirmed."""
    from models.admission import approve_group, record_payment

    def _confirm(group_id, now=None):
        now = now or at(0, 10, 30)
        approve_group(group_id, changed_by='desk', now=now)
        return record_payment(group_id, changed_by='desk', now=now)

    return _confirm
