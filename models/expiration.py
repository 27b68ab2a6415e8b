"""
Expiration sweeper.

Periodic pass that expires unpaid reservations past their payment deadline
and unwinds the waitlist behind each one. Every item runs in its own court
lock and transaction: a failing item is logged and picked up again on the
next cycle while the rest of the pass continues.

Only one pass runs at a time: an in-process lock guards threads and a lease
row in sweeper_lease guards other processes (gunicorn workers, cron).
"""

import logging
import os
import socket
import threading
from datetime import timedelta

from flask import current_app

from database import get_db, transaction
from models.reservation import RELEASED_SQL, record_status_change
from models.reservation_group import get_group, is_exempt_from_expiration
from models.reservation_state import expire_reservation, new_effects
from models.waitlist import WAITLIST_EXPIRED, WAITLIST_NOTIFIED
from utils.datetime_helpers import format_instant, get_local_now, parse_instant
from utils.locks import court_lock, court_locks

logger = logging.getLogger(__name__)

LEASE_NAME = 'expiration'

_sweep_lock = threading.Lock()


def _empty_summary() -> dict:
    return {'expired_count': 0, 'promoted_count': 0, 'cancelled_waitlist_count': 0}


# =============================================================================
# LEASE
# =============================================================================

def _lease_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{threading.get_ident()}"


def acquire_lease(holder: str, seconds: int = None) -> bool:
    """
    Take the sweeper lease if it is free or stale.

    Args:
        holder: Identifier of this sweeper
        seconds: Lease length (default SWEEPER_LEASE_SECONDS)

    Returns:
        bool: True if this holder now owns the lease
    """
    if seconds is None:
        seconds = int(current_app.config.get('SWEEPER_LEASE_SECONDS', 300))
    wall_now = get_local_now()

    with transaction() as db:
        cursor = db.cursor()
        cursor.execute('INSERT OR IGNORE INTO sweeper_lease (name) VALUES (?)', (LEASE_NAME,))
        cursor.execute('''
            UPDATE sweeper_lease
            SET holder = ?, expires_at = ?
            WHERE name = ?
              AND (holder IS NULL OR holder = ? OR expires_at IS NULL OR expires_at < ?)
        ''', (holder, format_instant(wall_now + timedelta(seconds=seconds)),
              LEASE_NAME, holder, format_instant(wall_now)))
        return cursor.rowcount == 1


def release_lease(holder: str) -> None:
    """Give the lease back (only if still held by `holder`)."""
    with transaction() as db:
        db.execute('''
            UPDATE sweeper_lease
            SET holder = NULL, expires_at = NULL
            WHERE name = ? AND holder = ?
        ''', (LEASE_NAME, holder))


# =============================================================================
# CANDIDATES
# =============================================================================

def find_expiration_candidates(now) -> list:
    """
    Active unpaid reservations whose payment deadline is before `now`.

    Exemption is not applied here.

    Returns:
        list: Reservation dicts, earliest deadline first
    """
    cursor = get_db().cursor()
    cursor.execute('''
        SELECT * FROM reservations
        WHERE lifecycle_state = 'active'
          AND payment_state = 'unpaid'
          AND approval_state != 'rejected'
          AND payment_deadline IS NOT NULL
          AND payment_deadline < ?
        ORDER BY payment_deadline, id
    ''', (format_instant(now),))
    return [dict(row) for row in cursor.fetchall()]


def _group_is_exempt(group_id) -> bool:
    if group_id is None:
        return False
    group = get_group(group_id)
    return bool(group) and is_exempt_from_expiration(group)


# =============================================================================
# SWEEP
# =============================================================================

def _expire_one(reservation: dict, now) -> dict:
    """Expire one reservation in its own lock and transaction; returns its effects."""
    effects = new_effects()
    with court_lock(reservation['court_id']):
        with transaction() as db:
            cursor = db.cursor()
            # Group may have been approved or given a proof since selection
            if _group_is_exempt(reservation['group_id']):
                return effects
            expire_reservation(cursor, reservation['id'], now, changed_by='sweeper', effects=effects)
    return effects


def expire_stale_notifications(now) -> int:
    """
    Expire notified waitlist entries whose promoted reservation no longer holds the slot.

    Returns:
        int: Number of entries expired
    """
    cursor = get_db().cursor()
    cursor.execute(f'''
        SELECT w.id, w.court_id, w.state, r.id AS reservation_id, r.lifecycle_state
        FROM waitlist_entries w
        JOIN reservations r ON r.id = w.promoted_reservation_id
        WHERE w.state = 'notified' AND {RELEASED_SQL}
    ''')
    stale = [dict(row) for row in cursor.fetchall()]
    if not stale:
        return 0

    expired = 0
    with court_locks([row['court_id'] for row in stale]):
        with transaction() as db:
            cursor = db.cursor()
            for row in stale:
                cursor.execute('''
                    UPDATE waitlist_entries
                    SET state = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND state = ?
                ''', (WAITLIST_EXPIRED, row['id'], WAITLIST_NOTIFIED))
                if cursor.rowcount:
                    record_status_change(cursor, 'waitlist_entry', row['id'], 'state',
                                         WAITLIST_NOTIFIED, WAITLIST_EXPIRED, 'sweeper',
                                         f"promoted reservation {row['reservation_id']} released")
                    expired += 1
    return expired


def run_expiration_sweep(now=None) -> dict:
    """
    Run one expiration pass.

    Args:
        now: Local instant to compare deadlines against (default: current time)

    Returns:
        dict: {'expired_count', 'promoted_count', 'cancelled_waitlist_count'};
        'skipped': True is added when another pass is already running
    """
    now = parse_instant(now) if now else get_local_now()
    summary = _empty_summary()
    failed = 0

    if not _sweep_lock.acquire(blocking=False):
        logger.info("Expiration sweep already running in this process, skipping")
        return {**summary, 'skipped': True}

    try:
        holder = _lease_holder()
        if not acquire_lease(holder):
            logger.info("Expiration sweep lease held elsewhere, skipping")
            return {**summary, 'skipped': True}

        try:
            exempt_groups = {}
            for reservation in find_expiration_candidates(now):
                group_id = reservation['group_id']
                if group_id not in exempt_groups:
                    exempt_groups[group_id] = _group_is_exempt(group_id)
                if exempt_groups[group_id]:
                    continue

                try:
                    effects = _expire_one(reservation, now)
                except Exception as e:
                    # Left for the next cycle
                    failed += 1
                    logger.error(f"Failed to expire reservation {reservation['id']}: {e}", exc_info=True)
                    continue

                summary['expired_count'] += len(effects['expired_reservations'])
                summary['promoted_count'] += len(effects['promoted'])
                summary['cancelled_waitlist_count'] += (
                    len(effects['cancelled_entries']) + len(effects['expired_entries'])
                )

            summary['cancelled_waitlist_count'] += expire_stale_notifications(now)
        finally:
            release_lease(holder)
    finally:
        _sweep_lock.release()

    if failed:
        summary['failed_count'] = failed
    logger.info(f"Expiration sweep at {format_instant(now)}: {summary}")
    return summary
