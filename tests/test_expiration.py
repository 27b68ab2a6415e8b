"""
Tests for the expiration sweeper.
"""

import pytest

from helpers import at, slot


class TestExpirationSweep:
    """Tests for run_expiration_sweep."""

    def test_expires_past_deadline(self, app, book, notifications):
        from models.expiration import run_expiration_sweep
        from models.reservation import get_reservation

        with app.app_context():
            first = book(1, *slot(0, 15, 16))
            summary = run_expiration_sweep(now=at(0, 11, 1))

            assert summary['expired_count'] == 1
            assert get_reservation(first['reservation']['id'])['lifecycle_state'] == 'expired'

        assert notifications[-1]['kind'] == 'reservation_expired'

    def test_deadline_not_reached(self, app, book):
        from models.expiration import run_expiration_sweep

        with app.app_context():
            book(1, *slot(0, 15, 16))
            assert run_expiration_sweep(now=at(0, 11))['expired_count'] == 0

    def test_sweep_is_idempotent(self, app, book):
        from models.expiration import run_expiration_sweep

        with app.app_context():
            book(1, *slot(0, 15, 16))
            book(2, *slot(0, 15, 16))
            first_pass = run_expiration_sweep(now=at(0, 12))
            second_pass = run_expiration_sweep(now=at(0, 12))

            assert first_pass['expired_count'] == 1
            assert first_pass['promoted_count'] == 1
            assert second_pass == {'expired_count': 0, 'promoted_count': 0, 'cancelled_waitlist_count': 0}

    def test_paid_reservation_not_expired(self, app, book):
        from models.admission import record_payment
        from models.expiration import run_expiration_sweep

        with app.app_context():
            first = book(1, *slot(0, 15, 16))
            record_payment(first['group_id'])
            assert run_expiration_sweep(now=at(0, 12))['expired_count'] == 0

    @pytest.mark.parametrize('exemption', ['no_expiry', 'payment_proof', 'approved'])
    def test_exempt_groups_skipped(self, app, book, exemption):
        from models.admission import approve_group
        from models.expiration import run_expiration_sweep
        from models.reservation import get_reservation
        from models.reservation_group import attach_payment_proof, grant_no_expiry

        with app.app_context():
            first = book(1, *slot(0, 15, 16))
            if exemption == 'no_expiry':
                grant_no_expiry(first['group_id'], changed_by='desk')
            elif exemption == 'payment_proof':
                attach_payment_proof(first['group_id'], 'uploads/receipt-1.jpg', changed_by='requester:1')
            else:
                approve_group(first['group_id'])

            assert run_expiration_sweep(now=at(0, 12))['expired_count'] == 0
            assert get_reservation(first['reservation']['id'])['lifecycle_state'] == 'active'

    def test_revoked_no_expiry_expires_again(self, app, book):
        from models.expiration import run_expiration_sweep
        from models.reservation_group import grant_no_expiry

        with app.app_context():
            first = book(1, *slot(0, 15, 16))
            grant_no_expiry(first['group_id'])
            grant_no_expiry(first['group_id'], enabled=False)
            assert run_expiration_sweep(now=at(0, 12))['expired_count'] == 1

    def test_failed_item_does_not_stop_sweep(self, app, book, monkeypatch):
        import models.expiration as expiration
        from models.reservation import get_reservation

        with app.app_context():
            broken = book(1, *slot(0, 14, 15))
            healthy = book(2, *slot(0, 15, 16))

            real_expire_one = expiration._expire_one

            def flaky_expire_one(reservation, now):
                if reservation['id'] == broken['reservation']['id']:
                    raise RuntimeError('disk full')
                return real_expire_one(reservation, now)

            monkeypatch.setattr(expiration, '_expire_one', flaky_expire_one)
            summary = expiration.run_expiration_sweep(now=at(0, 12))

            assert summary['expired_count'] == 1
            assert summary['failed_count'] == 1
            assert get_reservation(broken['reservation']['id'])['lifecycle_state'] == 'active'
            assert get_reservation(healthy['reservation']['id'])['lifecycle_state'] == 'expired'

    def test_string_instant_accepted(self, app, book):
        from models.expiration import run_expiration_sweep

        with app.app_context():
            book(1, *slot(0, 15, 16))
            assert run_expiration_sweep(now='2026-10-19 12:00:00')['expired_count'] == 1


class TestSweeperLease:
    """Only one sweeper runs at a time."""

    def test_lease_held_elsewhere_skips(self, app, book):
        from models.expiration import acquire_lease, run_expiration_sweep

        with app.app_context():
            book(1, *slot(0, 15, 16))
            assert acquire_lease('other-host:1:1')

            summary = run_expiration_sweep(now=at(0, 12))
            assert summary['skipped'] is True
            assert summary['expired_count'] == 0

    def test_lease_released_after_sweep(self, app):
        from models.expiration import acquire_lease, run_expiration_sweep

        with app.app_context():
            run_expiration_sweep(now=at(0, 12))
            assert acquire_lease('other-host:1:1')

    def test_expired_lease_can_be_taken(self, app):
        from models.expiration import acquire_lease

        with app.app_context():
            assert acquire_lease('other-host:1:1', seconds=-1)
            assert acquire_lease('this-host:2:2')

    def test_release_only_by_holder(self, app):
        from models.expiration import acquire_lease, release_lease

        with app.app_context():
            assert acquire_lease('other-host:1:1')
            release_lease('this-host:2:2')
            assert not acquire_lease('this-host:2:2')
