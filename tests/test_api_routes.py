"""
Tests for the JSON API routes.
"""

from helpers import slot


def _book(client, requester_id, start, end, court_id=1, **extra):
    return client.post('/api/bookings', json={
        'requester_id': requester_id,
        'court_id': court_id,
        'start': start,
        'end': end,
        **extra,
    })


class TestHealth:
    """Health endpoint."""

    def test_health_needs_no_auth(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'ok'


class TestBookingRoutes:
    """POST /api/bookings and reservation reads."""

    def test_reserved_returns_201(self, client):
        response = _book(client, 1, *slot(1, 10, 11))
        data = response.get_json()

        assert response.status_code == 201
        assert data['outcome'] == 'reserved'
        assert data['data']['reservation']['confirmed'] is False

    def test_waitlisted_returns_202(self, client):
        _book(client, 1, *slot(1, 10, 11))
        response = _book(client, 2, *slot(1, 10, 11))

        assert response.status_code == 202
        assert response.get_json()['data']['waitlist_entry']['position'] == 1

    def test_confirmed_slot_returns_409(self, client, operator_headers):
        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']
        client.post(f'/api/groups/{group_id}/approve', headers=operator_headers)
        client.post(f'/api/groups/{group_id}/payment', headers=operator_headers)

        response = _book(client, 2, *slot(1, 10, 11))
        data = response.get_json()
        assert response.status_code == 409
        assert data['outcome'] == 'rejected'
        assert data['data']['reason'] == 'slot_confirmed'

    def test_missing_fields_returns_400(self, client):
        response = client.post('/api/bookings', json={'requester_id': 1})
        assert response.status_code == 400
        assert 'court_id' in response.get_json()['error']

    def test_invalid_interval_returns_400(self, client):
        response = _book(client, 1, '2026-10-20 11:00:00', '2026-10-20 10:00:00')
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_busy_returns_503_with_retry(self, client, monkeypatch):
        import blueprints.api.bookings as bookings
        from utils.exceptions import BusyError

        def busy(**kwargs):
            raise BusyError('Court 1 is busy, retry later', court_id=1)

        monkeypatch.setattr(bookings, 'attempt_booking', busy)
        response = _book(client, 1, *slot(1, 10, 11))

        assert response.status_code == 503
        assert response.get_json()['retry'] is True

    def test_reservation_detail_includes_history(self, client, operator_headers):
        created = _book(client, 1, *slot(1, 10, 11)).get_json()['data']
        client.post(f"/api/groups/{created['group_id']}/approve", headers=operator_headers)

        response = client.get(f"/api/reservations/{created['reservation']['id']}")
        data = response.get_json()['data']
        assert data['approval_state'] == 'approved'
        assert data['history'][0]['changed_by'] == 'desk'

    def test_unknown_reservation_404(self, client):
        assert client.get('/api/reservations/999').status_code == 404

    def test_court_reservations_window(self, client):
        _book(client, 1, *slot(1, 10, 11))
        _book(client, 2, *slot(1, 14, 15))

        start, end = slot(1, 9, 12)
        response = client.get('/api/courts/1/reservations', query_string={'start': start, 'end': end})
        assert response.get_json()['count'] == 1


class TestGroupRoutes:
    """Operator and requester group actions."""

    def test_operator_actions_require_auth(self, client):
        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']

        response = client.post(f'/api/groups/{group_id}/approve')
        assert response.status_code == 401

        bad = {'Authorization': 'Bearer desk:wrong-token'}
        assert client.post(f'/api/groups/{group_id}/approve', headers=bad).status_code == 401

    def test_operator_request_while_database_locked(self, app, client, operator_headers):
        """Another writer holding the database turns into a retryable 503."""
        import sqlite3

        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']
        app.config['LOCK_TIMEOUT_SECONDS'] = 0.1

        other = sqlite3.connect(app.config['DATABASE_PATH'], timeout=0.1, isolation_level=None)
        other.execute('BEGIN IMMEDIATE')
        try:
            response = client.post(f'/api/groups/{group_id}/approve', headers=operator_headers)
        finally:
            other.execute('ROLLBACK')
            other.close()

        assert response.status_code == 503
        assert response.get_json()['retry'] is True

        retried = client.post(f'/api/groups/{group_id}/approve', headers=operator_headers)
        assert retried.get_json()['data']['status'] == 'ok'

    def test_approve_is_audited(self, app, client, operator_headers):
        from models.audit_log import get_audit_logs

        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']
        response = client.post(f'/api/groups/{group_id}/approve', headers=operator_headers)
        assert response.get_json()['data']['status'] == 'ok'

        with app.app_context():
            logs = get_audit_logs(action='APPROVE', entity_type='group', entity_id=group_id)
            assert len(logs) == 1
            assert logs[0]['actor'] == 'desk'
            assert logs[0]['changes']['before']['approval_state'] == 'pending_approval'
            assert logs[0]['changes']['after']['approval_state'] == 'approved'

    def test_repeat_reject_is_already_terminal(self, client, operator_headers):
        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']
        url = f'/api/groups/{group_id}/reject'

        first = client.post(url, json={'reason': 'no show last time'}, headers=operator_headers)
        second = client.post(url, headers=operator_headers)
        assert first.get_json()['data']['status'] == 'ok'
        assert second.status_code == 200
        assert second.get_json()['data']['status'] == 'already_terminal'

    def test_check_in_unconfirmed_returns_400(self, client, operator_headers):
        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']
        response = client.post(f'/api/groups/{group_id}/check-in', headers=operator_headers)
        assert response.status_code == 400

    def test_requester_cancels_own_group(self, app, client):
        from models.audit_log import get_audit_logs

        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']

        forbidden = client.post(f'/api/groups/{group_id}/cancel', json={'requester_id': 2})
        assert forbidden.status_code == 403

        response = client.post(f'/api/groups/{group_id}/cancel', json={'requester_id': 1})
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'ok'

        with app.app_context():
            logs = get_audit_logs(action='CANCEL', entity_type='group', entity_id=group_id)
            assert len(logs) == 1
            assert logs[0]['actor'] == 'requester:1'

    def test_payment_proof(self, client):
        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']

        missing = client.post(f'/api/groups/{group_id}/payment-proof', json={'requester_id': 1})
        assert missing.status_code == 400

        response = client.post(f'/api/groups/{group_id}/payment-proof',
                               json={'requester_id': 1, 'proof_ref': 'receipts/42.png'})
        assert response.get_json()['data']['payment_proof_ref'] == 'receipts/42.png'

    def test_group_detail(self, client):
        created = _book(client, 1, *slot(1, 10, 11)).get_json()['data']
        response = client.get(f"/api/groups/{created['group_id']}")
        data = response.get_json()['data']
        assert [r['id'] for r in data['reservations']] == [created['reservation']['id']]
        assert 'audit' not in data

    def test_group_detail_audit_for_operators(self, client, operator_headers):
        group_id = _book(client, 1, *slot(1, 10, 11)).get_json()['data']['group_id']
        client.post(f'/api/groups/{group_id}/approve', headers=operator_headers)

        data = client.get(f'/api/groups/{group_id}', headers=operator_headers).get_json()['data']
        assert [entry['action'] for entry in data['audit']] == ['APPROVE']

    def test_requester_groups(self, client):
        _book(client, 1, *slot(1, 10, 11))
        _book(client, 1, *slot(1, 12, 13))
        _book(client, 2, *slot(1, 14, 15))

        response = client.get('/api/requesters/1/groups')
        assert response.status_code == 200
        assert response.get_json()['count'] == 2
        assert all(g['requester_id'] == 1 for g in response.get_json()['data'])

    def test_unknown_group_404(self, client):
        assert client.get('/api/groups/999').status_code == 404
        assert client.post('/api/groups/999/cancel', json={'requester_id': 1}).status_code == 404


class TestWaitlistRoutes:
    """Waitlist listing."""

    def test_list_and_detail(self, client):
        _book(client, 1, *slot(1, 10, 11))
        entry = _book(client, 2, *slot(1, 10, 11)).get_json()['data']['waitlist_entry']

        listing = client.get('/api/waitlist?court_id=1&state=pending').get_json()
        assert listing['count'] == 1

        detail = client.get(f"/api/waitlist/{entry['id']}").get_json()['data']
        assert detail['state'] == 'pending'

    def test_unknown_state_400(self, client):
        assert client.get('/api/waitlist?state=lost').status_code == 400


class TestMaintenanceRoutes:
    """Sweeper and reconciler endpoints."""

    def test_sweep_requires_auth(self, client):
        assert client.post('/api/maintenance/sweep').status_code == 401

    def test_sweep(self, client, operator_headers):
        response = client.post('/api/maintenance/sweep', headers=operator_headers)
        assert response.status_code == 200
        assert 'expired_count' in response.get_json()['data']

    def test_reconcile_dry_run(self, client, operator_headers):
        response = client.post('/api/maintenance/reconcile', json={'dry_run': True},
                               headers=operator_headers)
        data = response.get_json()['data']
        assert data['dry_run'] is True
        assert data['repaired_count'] == 0
        assert data['repairable_count'] == 0
        assert data['flagged_count'] == 0
