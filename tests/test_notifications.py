"""
Tests for post-commit notification delivery.
"""

import pytest

from helpers import slot


class TestNotificationQueue:
    """Notifications follow the transaction outcome."""

    def test_rollback_discards_queued(self, app, notifications):
        from database import transaction
        from utils.notifications import queue_notification

        with app.app_context():
            with pytest.raises(RuntimeError):
                with transaction():
                    queue_notification(1, 'reservation_created', {'reservation_id': 1})
                    raise RuntimeError('abort')

        assert notifications == []

    def test_failing_backend_keeps_state(self, app, book):
        from extensions import notifier
        from models.reservation import get_reservation

        def broken_backend(requester_id, kind, payload):
            raise ConnectionError('smtp down')

        notifier.init_app(app, backend=broken_backend)
        try:
            with app.app_context():
                result = book(1, *slot(0, 10, 11))
                assert result['outcome'] == 'reserved'
                assert get_reservation(result['reservation']['id']) is not None
        finally:
            notifier.init_app(app)

    def test_group_events(self, app, book, confirm, notifications):
        with app.app_context():
            first = book(1, *slot(0, 10, 11))
            confirm(first['group_id'])

        assert [n['kind'] for n in notifications] == [
            'reservation_created', 'reservation_approved', 'payment_recorded'
        ]
        assert notifications[1]['payload']['group_id'] == first['group_id']
