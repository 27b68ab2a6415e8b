"""
Reservation state management functions.

The group is the only writer of line-item approval/payment. Every
transition goes through apply_group_transition(), which updates the group,
cascades the new values to each line item and runs the waitlist resolution
for every reservation whose blocking status changed, all on the caller's
cursor so the whole cascade commits or rolls back together.
"""

import logging

from models.interval import Interval
from models.reservation import (
    APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED,
    PAYMENT_PAID, LIFECYCLE_ACTIVE, LIFECYCLE_CANCELLED, LIFECYCLE_CHECKED_IN,
    LIFECYCLE_COMPLETED, LIFECYCLE_EXPIRED,
    get_group_line_items, get_reservation, is_confirmed, is_released,
    record_status_change, set_lifecycle_state
)
from models.reservation_group import get_group
from utils.datetime_helpers import format_instant
from utils.exceptions import InvalidTransition, ValidationError
from utils.notifications import (
    EVENT_PAYMENT_RECORDED, EVENT_RESERVATION_APPROVED, EVENT_RESERVATION_CANCELLED,
    EVENT_RESERVATION_EXPIRED, EVENT_RESERVATION_REJECTED, queue_notification
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

ACTION_APPROVE = 'approve'
ACTION_REJECT = 'reject'
ACTION_PAY = 'pay'
ACTION_CANCEL = 'cancel'
ACTION_CHECK_IN = 'check_in'
ACTION_COMPLETE = 'complete'

GROUP_ACTIONS = (
    ACTION_APPROVE, ACTION_REJECT, ACTION_PAY,
    ACTION_CANCEL, ACTION_CHECK_IN, ACTION_COMPLETE
)

STATUS_OK = 'ok'
STATUS_ALREADY_TERMINAL = 'already_terminal'

# Group-owned fields mirrored on every line item
CASCADED_FIELDS = ('approval_state', 'payment_state')


# =============================================================================
# EFFECTS
# =============================================================================

def new_effects() -> dict:
    """Empty record of everything a cascade touched."""
    return {
        'groups': set(),
        'reservations': set(),
        'waitlist_entries': set(),
        'promoted': [],
        'cancelled_entries': [],
        'expired_entries': [],
        'rejected_reservations': [],
        'expired_reservations': [],
    }


def effects_as_dict(effects: dict) -> dict:
    """JSON-friendly copy of an effects record."""
    return {
        key: sorted(value) if isinstance(value, set) else list(value)
        for key, value in effects.items()
    }


# =============================================================================
# CASCADE PRIMITIVES
# =============================================================================

def _update_group_fields(cursor, group: dict, changes: dict, changed_by: str, reason: str) -> None:
    """Write group columns and one history row per changed field."""
    assignments = ', '.join(f'{column} = ?' for column in changes)
    cursor.execute(
        f'UPDATE reservation_groups SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
        (*changes.values(), group['id'])
    )
    for column, value in changes.items():
        if column in CASCADED_FIELDS:
            record_status_change(cursor, 'group', group['id'], column,
                                 group[column], value, changed_by, reason)
    group.update(changes)


def cascade_group_state(cursor, group: dict, changed_by: str = 'system', reason: str = '',
                        effects: dict = None) -> int:
    """
    Copy the group's approval/payment onto every line item.

    This is the only code path that writes those two columns on
    reservations.

    Returns:
        int: Number of line items that changed
    """
    changed = 0
    for item in get_group_line_items(group['id'], cursor=cursor):
        item_changed = False
        for column in CASCADED_FIELDS:
            if item[column] == group[column]:
                continue
            cursor.execute(
                f'UPDATE reservations SET {column} = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
                (group[column], item['id'])
            )
            record_status_change(cursor, 'reservation', item['id'], column,
                                 item[column], group[column], changed_by, reason)
            item_changed = True
        if item_changed:
            changed += 1
            if effects is not None:
                effects['reservations'].add(item['id'])
    return changed


def _notify_group(group: dict, items: list, event_kind: str, **extra) -> None:
    payload = {
        'group_id': group['id'],
        'reservation_ids': [item['id'] for item in items],
    }
    payload.update(extra)
    queue_notification(group['requester_id'], event_kind, payload)


def resolve_newly_confirmed(cursor, group: dict, before: dict, now, changed_by: str,
                            effects: dict) -> None:
    """Run the confirmed-resolution for each line item that just became Confirmed."""
    from models.admission import resolve_confirmed
    from models.conflicts import find_blocking

    for item in get_group_line_items(group['id'], cursor=cursor):
        if not is_confirmed(item) or before.get(item['id']):
            continue
        blocker = find_blocking(cursor, Interval.from_row(item), exclude_ids=[item['id']],
                                exclude_group_id=group['id'])
        if blocker:
            raise InvalidTransition(
                f"Reservation {item['id']} overlaps confirmed reservation {blocker['id']}"
            )
        resolve_confirmed(cursor, item, now, changed_by=changed_by, effects=effects)


def resolve_newly_released(cursor, group: dict, before: dict, now, changed_by: str,
                           effects: dict, cause: str) -> None:
    """Run the released-resolution for each line item that just stopped blocking."""
    from models.admission import resolve_released

    for item in get_group_line_items(group['id'], cursor=cursor):
        if not is_released(item) or before.get(item['id']):
            continue
        resolve_released(cursor, item, now, changed_by=changed_by, effects=effects, cause=cause)


# =============================================================================
# GROUP TRANSITIONS
# =============================================================================

def apply_group_transition(cursor, group_id: int, action: str, now, changed_by: str = 'system',
                           reason: str = '', effects: dict = None) -> str:
    """
    Apply one transition to a group and everything it cascades to.

    Runs on the caller's transaction cursor and never commits. The caller
    holds the court locks of the group's line items.

    Args:
        cursor: Active transaction cursor
        group_id: Group ID
        action: One of GROUP_ACTIONS
        now: Local instant of the transition
        changed_by: Actor recorded in history
        reason: Free-text reason (rejections)
        effects: Effects record to extend (new_effects())

    Returns:
        str: STATUS_OK, or STATUS_ALREADY_TERMINAL when the group has already
        left the state the action expects (no change was made)

    Raises:
        ValidationError: Unknown group or action
        InvalidTransition: Action not allowed from the current state
    """
    if action not in GROUP_ACTIONS:
        raise ValidationError(f"Unknown group action: {action}")
    if effects is None:
        effects = new_effects()

    group = get_group(group_id, cursor=cursor)
    if not group:
        raise ValidationError(f"Reservation group {group_id} not found")

    items = get_group_line_items(group_id, cursor=cursor)
    live_items = [item for item in items if not is_released(item)]
    was_confirmed = {item['id']: is_confirmed(item) for item in items}
    was_released = {item['id']: is_released(item) for item in items}
    stamp = format_instant(now)

    if action == ACTION_APPROVE:
        if group['approval_state'] != APPROVAL_PENDING or not live_items:
            return STATUS_ALREADY_TERMINAL
        _update_group_fields(cursor, group, {'approval_state': APPROVAL_APPROVED, 'approved_at': stamp},
                             changed_by, reason or 'approved')
        cascade_group_state(cursor, group, changed_by, reason or 'approved', effects)
        resolve_newly_confirmed(cursor, group, was_confirmed, now, changed_by, effects)
        _notify_group(group, live_items, EVENT_RESERVATION_APPROVED)

    elif action == ACTION_REJECT:
        fully_confirmed = (group['approval_state'] == APPROVAL_APPROVED
                           and group['payment_state'] == PAYMENT_PAID)
        if group['approval_state'] == APPROVAL_REJECTED or fully_confirmed:
            return STATUS_ALREADY_TERMINAL
        _update_group_fields(cursor, group, {'approval_state': APPROVAL_REJECTED,
                                             'rejection_reason': reason or None},
                             changed_by, reason or 'rejected')
        cascade_group_state(cursor, group, changed_by, reason or 'rejected', effects)
        effects['rejected_reservations'].extend(item['id'] for item in live_items)
        resolve_newly_released(cursor, group, was_released, now, changed_by, effects,
                               cause=APPROVAL_REJECTED)
        _notify_group(group, live_items, EVENT_RESERVATION_REJECTED, reason=reason)

    elif action == ACTION_PAY:
        if (group['payment_state'] == PAYMENT_PAID
                or group['approval_state'] == APPROVAL_REJECTED
                or not live_items):
            return STATUS_ALREADY_TERMINAL
        _update_group_fields(cursor, group, {'payment_state': PAYMENT_PAID, 'paid_at': stamp},
                             changed_by, reason or 'payment recorded')
        cascade_group_state(cursor, group, changed_by, reason or 'payment recorded', effects)
        resolve_newly_confirmed(cursor, group, was_confirmed, now, changed_by, effects)
        _notify_group(group, live_items, EVENT_PAYMENT_RECORDED)

    elif action == ACTION_CANCEL:
        targets = [item for item in live_items if item['lifecycle_state'] == LIFECYCLE_ACTIVE]
        if not targets:
            return STATUS_ALREADY_TERMINAL
        for item in targets:
            set_lifecycle_state(cursor, item['id'], LIFECYCLE_CANCELLED, changed_by, reason or 'cancelled')
            effects['reservations'].add(item['id'])
        resolve_newly_released(cursor, group, was_released, now, changed_by, effects,
                               cause=LIFECYCLE_CANCELLED)
        _notify_group(group, targets, EVENT_RESERVATION_CANCELLED, reason=reason)

    elif action == ACTION_CHECK_IN:
        if not (group['approval_state'] == APPROVAL_APPROVED and group['payment_state'] == PAYMENT_PAID):
            raise InvalidTransition(f"Group {group_id} must be approved and paid before check-in")
        targets = [item for item in live_items if item['lifecycle_state'] == LIFECYCLE_ACTIVE]
        if not targets:
            return STATUS_ALREADY_TERMINAL
        for item in targets:
            set_lifecycle_state(cursor, item['id'], LIFECYCLE_CHECKED_IN, changed_by, reason or 'checked in')
            effects['reservations'].add(item['id'])

    elif action == ACTION_COMPLETE:
        targets = [item for item in live_items if item['lifecycle_state'] == LIFECYCLE_CHECKED_IN]
        if not targets:
            if any(item['lifecycle_state'] == LIFECYCLE_ACTIVE for item in live_items):
                raise InvalidTransition(f"Group {group_id} must be checked in before completion")
            return STATUS_ALREADY_TERMINAL
        for item in targets:
            set_lifecycle_state(cursor, item['id'], LIFECYCLE_COMPLETED, changed_by, reason or 'completed')
            effects['reservations'].add(item['id'])

    effects['groups'].add(group_id)
    logger.info(f"Group {group_id}: {action} by {changed_by}")
    return STATUS_OK


# =============================================================================
# PER-ITEM EXPIRY
# =============================================================================

def expire_reservation(cursor, reservation_id: int, now, changed_by: str = 'sweeper',
                       effects: dict = None) -> bool:
    """
    Expire one unpaid line item and unwind its waitlist.

    Lifecycle is per item, so expiry does not touch the group's fields.

    Returns:
        bool: True if the reservation was expired, False if it was already
        past the state expiry applies to
    """
    from models.admission import resolve_released

    if effects is None:
        effects = new_effects()

    reservation = get_reservation(reservation_id, cursor=cursor)
    if (not reservation
            or reservation['lifecycle_state'] != LIFECYCLE_ACTIVE
            or reservation['payment_state'] == PAYMENT_PAID
            or is_released(reservation)):
        return False

    set_lifecycle_state(cursor, reservation_id, LIFECYCLE_EXPIRED, changed_by,
                        f"payment deadline {reservation['payment_deadline']} passed")
    reservation['lifecycle_state'] = LIFECYCLE_EXPIRED
    effects['reservations'].add(reservation_id)
    effects['expired_reservations'].append(reservation_id)

    resolve_released(cursor, reservation, now, changed_by=changed_by, effects=effects,
                     cause=LIFECYCLE_EXPIRED)
    queue_notification(reservation['requester_id'], EVENT_RESERVATION_EXPIRED, {
        'reservation_id': reservation_id,
        'group_id': reservation['group_id'],
        'payment_deadline': reservation['payment_deadline'],
    })
    return True
