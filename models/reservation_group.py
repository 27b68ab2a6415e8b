"""
Reservation group data access functions.

A group is one checkout: it owns approval and payment for all of its line
items. Creating, reading and the two expiry-related flags live here; state
transitions live in reservation_state.py.
"""

from typing import List, Optional

from database import get_db, transaction
from models.reservation import (
    APPROVAL_APPROVED, APPROVAL_PENDING, PAYMENT_UNPAID,
    get_group_line_items, record_status_change
)
from utils.datetime_helpers import format_instant
from utils.exceptions import ValidationError


# =============================================================================
# CREATE
# =============================================================================

def create_group(cursor, requester_id: int, created_at) -> dict:
    """
    Insert a new group in pending_approval/unpaid.

    Args:
        cursor: Active transaction cursor
        requester_id: Requester ID
        created_at: Local creation instant

    Returns:
        dict: The new group row
    """
    stamp = format_instant(created_at)
    cursor.execute('''
        INSERT INTO reservation_groups
        (requester_id, approval_state, payment_state, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
    ''', (requester_id, APPROVAL_PENDING, PAYMENT_UNPAID, stamp, stamp))
    return get_group(cursor.lastrowid, cursor=cursor)


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_group(group_id: int, cursor=None) -> Optional[dict]:
    """Get a group row by ID."""
    cur = cursor or get_db().cursor()
    cur.execute('SELECT * FROM reservation_groups WHERE id = ?', (group_id,))
    row = cur.fetchone()
    return dict(row) if row else None


def get_group_with_items(group_id: int) -> Optional[dict]:
    """
    Get a group with its line items.

    Returns:
        dict: Group fields plus 'reservations' list, or None
    """
    group = get_group(group_id)
    if not group:
        return None
    group['reservations'] = get_group_line_items(group_id)
    return group


def get_group_court_ids(group_id: int) -> List[int]:
    """Distinct courts of a group's line items, sorted (lock acquisition order)."""
    cursor = get_db().cursor()
    cursor.execute('''
        SELECT DISTINCT court_id FROM reservations
        WHERE group_id = ?
        ORDER BY court_id
    ''', (group_id,))
    return [row['court_id'] for row in cursor.fetchall()]


def get_groups_by_requester(requester_id: int) -> List[dict]:
    """List a requester's groups, newest first."""
    cursor = get_db().cursor()
    cursor.execute('''
        SELECT * FROM reservation_groups
        WHERE requester_id = ?
        ORDER BY created_at DESC, id DESC
    ''', (requester_id,))
    return [dict(row) for row in cursor.fetchall()]


# =============================================================================
# EXPIRY FLAGS
# =============================================================================

def is_exempt_from_expiration(group: dict) -> bool:
    """
    A group whose line items the sweeper must leave alone.

    Exempt when an operator granted no-expiry, a payment proof was attached,
    or the group is already approved.
    """
    return (
        bool(group.get('no_expiry'))
        or bool(group.get('payment_proof_ref'))
        or group.get('approval_state') == APPROVAL_APPROVED
    )


def attach_payment_proof(group_id: int, proof_ref: str, changed_by: str = 'system') -> dict:
    """
    Record that the requester submitted proof of payment.

    The group stays unpaid until an operator records the payment, but the
    sweeper no longer expires it.

    Raises:
        ValidationError: Unknown group or empty reference
    """
    if not proof_ref or not str(proof_ref).strip():
        raise ValidationError("Payment proof reference is required")

    with transaction() as db:
        cursor = db.cursor()
        group = get_group(group_id, cursor=cursor)
        if not group:
            raise ValidationError(f"Reservation group {group_id} not found")

        cursor.execute('''
            UPDATE reservation_groups
            SET payment_proof_ref = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        ''', (str(proof_ref).strip(), group_id))
        record_status_change(cursor, 'group', group_id, 'payment_proof_ref',
                             group['payment_proof_ref'], str(proof_ref).strip(),
                             changed_by, 'payment proof attached')
        return get_group(group_id, cursor=cursor)


def grant_no_expiry(group_id: int, changed_by: str = 'system', enabled: bool = True) -> dict:
    """
    Exempt (or stop exempting) a group from payment-deadline expiry.

    Raises:
        ValidationError: Unknown group
    """
    with transaction() as db:
        cursor = db.cursor()
        group = get_group(group_id, cursor=cursor)
        if not group:
            raise ValidationError(f"Reservation group {group_id} not found")

        new_value = 1 if enabled else 0
        if group['no_expiry'] != new_value:
            cursor.execute('''
                UPDATE reservation_groups
                SET no_expiry = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            ''', (new_value, group_id))
            record_status_change(cursor, 'group', group_id, 'no_expiry',
                                 str(group['no_expiry']), str(new_value), changed_by,
                                 'no-expiry granted' if enabled else 'no-expiry revoked')
        return get_group(group_id, cursor=cursor)
