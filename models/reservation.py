"""
Reservation data access functions.

A reservation is one requester's claim on one court interval. Its
approval/payment fields are owned by its group and written only by the
cascade in reservation_state.py; this module inserts rows and reads them.
"""

from typing import List, Optional

from database import get_db
from utils.datetime_helpers import format_instant, parse_instant
from utils.exceptions import ValidationError

# =============================================================================
# STATE CONSTANTS
# =============================================================================

APPROVAL_PENDING = 'pending_approval'
APPROVAL_APPROVED = 'approved'
APPROVAL_REJECTED = 'rejected'
APPROVAL_STATES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED)

PAYMENT_UNPAID = 'unpaid'
PAYMENT_PAID = 'paid'
PAYMENT_STATES = (PAYMENT_UNPAID, PAYMENT_PAID)

LIFECYCLE_ACTIVE = 'active'
LIFECYCLE_CHECKED_IN = 'checked_in'
LIFECYCLE_COMPLETED = 'completed'
LIFECYCLE_CANCELLED = 'cancelled'
LIFECYCLE_EXPIRED = 'expired'
LIFECYCLE_STATES = (
    LIFECYCLE_ACTIVE, LIFECYCLE_CHECKED_IN, LIFECYCLE_COMPLETED,
    LIFECYCLE_CANCELLED, LIFECYCLE_EXPIRED
)

# Lifecycle states in which a reservation still holds its slot
LIVE_LIFECYCLE_STATES = (LIFECYCLE_ACTIVE, LIFECYCLE_CHECKED_IN, LIFECYCLE_COMPLETED)
RELEASED_LIFECYCLE_STATES = (LIFECYCLE_CANCELLED, LIFECYCLE_EXPIRED)

# SQL fragments over alias "r"; kept next to the Python predicates below so
# both notions of "confirmed" stay identical.
CONFIRMED_SQL = (
    "r.approval_state = 'approved' AND r.payment_state = 'paid' "
    "AND r.lifecycle_state IN ('active', 'checked_in', 'completed')"
)
RELEASED_SQL = (
    "(r.approval_state = 'rejected' OR r.lifecycle_state IN ('cancelled', 'expired'))"
)
PROVISIONAL_SQL = f"NOT ({CONFIRMED_SQL}) AND NOT {RELEASED_SQL}"


# =============================================================================
# PREDICATES
# =============================================================================

def is_confirmed(reservation: dict) -> bool:
    """Approved, paid and not terminal: blocks every contender outright."""
    return (
        reservation['approval_state'] == APPROVAL_APPROVED
        and reservation['payment_state'] == PAYMENT_PAID
        and reservation['lifecycle_state'] in LIVE_LIFECYCLE_STATES
    )


def is_released(reservation: dict) -> bool:
    """Rejected, cancelled or expired: no longer claims its slot."""
    return (
        reservation['approval_state'] == APPROVAL_REJECTED
        or reservation['lifecycle_state'] in RELEASED_LIFECYCLE_STATES
    )


def is_provisional(reservation: dict) -> bool:
    """Claims its slot but only admits contenders to the waitlist."""
    return not is_confirmed(reservation) and not is_released(reservation)


# =============================================================================
# CREATE
# =============================================================================

def insert_reservation(cursor, requester_id: int, interval, group: dict, created_at,
                       payment_deadline=None, price: float = 0.0,
                       origin_waitlist_entry_id: int = None) -> int:
    """
    Insert a line item into a group.

    Approval and payment are copied from the group so the group cascade rule
    holds from the first write.

    Args:
        cursor: Active transaction cursor
        requester_id: Requester ID
        interval: Interval being booked
        group: Owning group row
        created_at: Local creation instant
        payment_deadline: Deadline instant or None
        price: Quoted price
        origin_waitlist_entry_id: Source waitlist entry for promoted reservations

    Returns:
        int: New reservation ID
    """
    cursor.execute('''
        INSERT INTO reservations (
            requester_id, court_id, start_at, end_at, group_id,
            approval_state, payment_state, lifecycle_state,
            payment_deadline, origin_waitlist_entry_id, price, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, 'active', ?, ?, ?, ?)
    ''', (
        requester_id, interval.court_id, interval.start_str, interval.end_str, group['id'],
        group['approval_state'], group['payment_state'],
        format_instant(payment_deadline), origin_waitlist_entry_id, price,
        format_instant(created_at)
    ))
    return cursor.lastrowid


def set_lifecycle_state(cursor, reservation_id: int, new_state: str,
                        changed_by: str = 'system', reason: str = '') -> bool:
    """
    Change the lifecycle state of one reservation and record it in history.

    Lifecycle is per reservation; approval/payment are not touched here.

    Returns:
        bool: True if the state changed
    """
    cursor.execute('SELECT lifecycle_state FROM reservations WHERE id = ?', (reservation_id,))
    row = cursor.fetchone()
    if not row or row['lifecycle_state'] == new_state:
        return False

    cursor.execute('''
        UPDATE reservations
        SET lifecycle_state = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (new_state, reservation_id))
    record_status_change(cursor, 'reservation', reservation_id, 'lifecycle_state',
                         row['lifecycle_state'], new_state, changed_by, reason)
    return True


def reject_ungrouped_reservation(cursor, reservation_id: int,
                                 changed_by: str = 'system', reason: str = '') -> bool:
    """
    Reject a reservation that has no group to cascade from.

    Only for rows whose group is missing; grouped rows are rejected
    through apply_group_transition().

    Returns:
        bool: True if the approval state changed
    """
    cursor.execute('SELECT approval_state FROM reservations WHERE id = ?', (reservation_id,))
    row = cursor.fetchone()
    if not row or row['approval_state'] == APPROVAL_REJECTED:
        return False

    cursor.execute('''
        UPDATE reservations
        SET approval_state = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (APPROVAL_REJECTED, reservation_id))
    record_status_change(cursor, 'reservation', reservation_id, 'approval_state',
                         row['approval_state'], APPROVAL_REJECTED, changed_by, reason)
    return True


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_reservation(reservation_id: int, cursor=None) -> Optional[dict]:
    """
    Get a single reservation by ID.

    Args:
        reservation_id: Reservation ID
        cursor: Optional cursor of an open transaction

    Returns:
        dict or None
    """
    cur = cursor or get_db().cursor()
    cur.execute('SELECT * FROM reservations WHERE id = ?', (reservation_id,))
    row = cur.fetchone()
    return dict(row) if row else None


def get_group_line_items(group_id: int, cursor=None) -> List[dict]:
    """Get every reservation of a group, oldest first."""
    cur = cursor or get_db().cursor()
    cur.execute('''
        SELECT * FROM reservations
        WHERE group_id = ?
        ORDER BY created_at, id
    ''', (group_id,))
    return [dict(row) for row in cur.fetchall()]


def get_reservations_for_court(court_id: int, start=None, end=None) -> List[dict]:
    """
    List reservations of a court, optionally limited to those overlapping [start, end).

    Args:
        court_id: Court ID
        start: Local instant (datetime or string)
        end: Local instant (datetime or string)

    Returns:
        list: Reservation dicts ordered by start

    Raises:
        ValidationError: If start/end cannot be parsed
    """
    query = 'SELECT * FROM reservations WHERE court_id = ?'
    params = [court_id]
    if start and end:
        try:
            start_at, end_at = format_instant(parse_instant(start)), format_instant(parse_instant(end))
        except ValueError as e:
            raise ValidationError(f"Invalid instant: {e}")
        query += ' AND start_at < ? AND ? < end_at'
        params.extend([end_at, start_at])
    query += ' ORDER BY start_at, id'

    cursor = get_db().cursor()
    cursor.execute(query, params)
    return [dict(row) for row in cursor.fetchall()]


def get_court(court_id: int, cursor=None) -> Optional[dict]:
    """Get a court by ID."""
    cur = cursor or get_db().cursor()
    cur.execute('SELECT * FROM courts WHERE id = ?', (court_id,))
    row = cur.fetchone()
    return dict(row) if row else None


# =============================================================================
# HISTORY
# =============================================================================

def record_status_change(cursor, entity_type: str, entity_id: int, field: str,
                         old_value, new_value, changed_by: str = 'system', reason: str = '') -> None:
    """Append one field change to status_history."""
    cursor.execute('''
        INSERT INTO status_history
        (entity_type, entity_id, field, old_value, new_value, changed_by, reason, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
    ''', (entity_type, entity_id, field, old_value, new_value, changed_by, reason))


def get_status_history(entity_type: str, entity_id: int) -> List[dict]:
    """
    Get state change history for an entity.

    Returns:
        list: History entries, oldest first
    """
    cursor = get_db().cursor()
    cursor.execute('''
        SELECT * FROM status_history
        WHERE entity_type = ? AND entity_id = ?
        ORDER BY id
    ''', (entity_type, entity_id))
    return [dict(row) for row in cursor.fetchall()]


def serialize_reservation(reservation: dict) -> dict:
    """Reservation dict for API output, with derived flags."""
    data = dict(reservation)
    data['confirmed'] = is_confirmed(reservation)
    data['released'] = is_released(reservation)
    return data
