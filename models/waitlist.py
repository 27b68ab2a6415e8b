"""
Waitlist model.
Entries queued behind a provisional reservation for an exact court interval.
"""

from typing import List, Optional

from database import get_db
from models.reservation import record_status_change
from utils.datetime_helpers import format_instant


# =============================================================================
# STATE CONSTANTS
# =============================================================================

WAITLIST_PENDING = 'pending'
WAITLIST_NOTIFIED = 'notified'
WAITLIST_CONVERTED = 'converted'
WAITLIST_EXPIRED = 'expired'
WAITLIST_CANCELLED = 'cancelled'

WAITLIST_STATES = (
    WAITLIST_PENDING, WAITLIST_NOTIFIED, WAITLIST_CONVERTED,
    WAITLIST_EXPIRED, WAITLIST_CANCELLED
)

# Entries still holding a place in the queue
WAITLIST_OPEN_STATES = (WAITLIST_PENDING, WAITLIST_NOTIFIED)


# =============================================================================
# CREATE
# =============================================================================

def next_position(cursor, interval) -> int:
    """
    Next queue position for an exact (court, start, end).

    Counts entries in every state so positions are never reused.
    """
    cursor.execute('''
        SELECT COUNT(*) AS total FROM waitlist_entries
        WHERE court_id = ? AND start_at = ? AND end_at = ?
    ''', (interval.court_id, interval.start_str, interval.end_str))
    return cursor.fetchone()['total'] + 1


def create_waitlist_entry(cursor, requester_id: int, interval, blocking_reservation_id: int,
                          created_at) -> dict:
    """
    Queue a requester behind a blocking reservation.

    Args:
        cursor: Active transaction cursor
        requester_id: Requester ID
        interval: Requested court interval
        blocking_reservation_id: Provisional reservation that blocks the slot
        created_at: Local creation instant

    Returns:
        dict: The new entry row
    """
    position = next_position(cursor, interval)
    cursor.execute('''
        INSERT INTO waitlist_entries (
            requester_id, court_id, start_at, end_at,
            blocking_reservation_id, position, state, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)
    ''', (
        requester_id, interval.court_id, interval.start_str, interval.end_str,
        blocking_reservation_id, position, format_instant(created_at)
    ))
    return get_waitlist_entry(cursor.lastrowid, cursor=cursor)


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_waitlist_entry(entry_id: int, cursor=None) -> Optional[dict]:
    """Get a waitlist entry by ID."""
    cur = cursor or get_db().cursor()
    cur.execute('SELECT * FROM waitlist_entries WHERE id = ?', (entry_id,))
    row = cur.fetchone()
    return dict(row) if row else None


def get_entries_blocked_by(cursor, reservation_id: int, states=WAITLIST_OPEN_STATES) -> List[dict]:
    """Entries bound to a blocking reservation, in queue order."""
    placeholders = ','.join('?' * len(states))
    cursor.execute(f'''
        SELECT * FROM waitlist_entries
        WHERE blocking_reservation_id = ? AND state IN ({placeholders})
        ORDER BY position, id
    ''', (reservation_id, *states))
    return [dict(row) for row in cursor.fetchall()]


def get_pending_entries_for_slot(cursor, court_id: int, start_at: str, end_at: str) -> List[dict]:
    """Pending entries for the exact court interval, in queue order."""
    cursor.execute('''
        SELECT * FROM waitlist_entries
        WHERE court_id = ? AND start_at = ? AND end_at = ? AND state = 'pending'
        ORDER BY position, id
    ''', (court_id, start_at, end_at))
    return [dict(row) for row in cursor.fetchall()]


def get_entry_for_promoted_reservation(cursor, reservation_id: int) -> Optional[dict]:
    """The entry whose promotion produced this reservation, if any."""
    cursor.execute('''
        SELECT * FROM waitlist_entries
        WHERE promoted_reservation_id = ?
        ORDER BY id DESC
        LIMIT 1
    ''', (reservation_id,))
    row = cursor.fetchone()
    return dict(row) if row else None


def get_waitlist(court_id: int = None, state: str = None, requester_id: int = None) -> List[dict]:
    """
    List waitlist entries with optional filters.

    Args:
        court_id: Filter by court
        state: Filter by entry state
        requester_id: Filter by requester

    Returns:
        list: Entries ordered by slot then position
    """
    query = 'SELECT * FROM waitlist_entries WHERE 1=1'
    params = []
    if court_id is not None:
        query += ' AND court_id = ?'
        params.append(court_id)
    if state:
        query += ' AND state = ?'
        params.append(state)
    if requester_id is not None:
        query += ' AND requester_id = ?'
        params.append(requester_id)
    query += ' ORDER BY court_id, start_at, end_at, position, id'

    cursor = get_db().cursor()
    cursor.execute(query, params)
    return [dict(row) for row in cursor.fetchall()]


# =============================================================================
# UPDATE
# =============================================================================

def set_entry_state(cursor, entry: dict, new_state: str, changed_by: str = 'system',
                    reason: str = '') -> bool:
    """
    Move an entry to a new state and record it.

    Returns:
        bool: True if the state changed
    """
    if entry['state'] == new_state:
        return False
    cursor.execute('''
        UPDATE waitlist_entries
        SET state = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (new_state, entry['id']))
    record_status_change(cursor, 'waitlist_entry', entry['id'], 'state',
                         entry['state'], new_state, changed_by, reason)
    entry['state'] = new_state
    return True


def rebind_entry(cursor, entry: dict, blocking_reservation_id: int,
                 changed_by: str = 'system') -> None:
    """Point a pending entry at a different blocking reservation."""
    if entry['blocking_reservation_id'] == blocking_reservation_id:
        return
    cursor.execute('''
        UPDATE waitlist_entries
        SET blocking_reservation_id = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (blocking_reservation_id, entry['id']))
    record_status_change(cursor, 'waitlist_entry', entry['id'], 'blocking_reservation_id',
                         entry['blocking_reservation_id'], blocking_reservation_id,
                         changed_by, 'rebound to surviving blocker')
    entry['blocking_reservation_id'] = blocking_reservation_id


def mark_entry_notified(cursor, entry: dict, promoted_reservation_id: int, notified_at,
                        payment_deadline, changed_by: str = 'system') -> None:
    """Record a promotion: entry becomes notified and points at its new reservation."""
    cursor.execute('''
        UPDATE waitlist_entries
        SET state = 'notified',
            notified_at = ?,
            payment_deadline = ?,
            promoted_reservation_id = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (format_instant(notified_at), format_instant(payment_deadline),
          promoted_reservation_id, entry['id']))
    record_status_change(cursor, 'waitlist_entry', entry['id'], 'state',
                         entry['state'], WAITLIST_NOTIFIED, changed_by,
                         f'promoted to reservation {promoted_reservation_id}')
    entry.update(state=WAITLIST_NOTIFIED, promoted_reservation_id=promoted_reservation_id,
                 notified_at=format_instant(notified_at),
                 payment_deadline=format_instant(payment_deadline))
