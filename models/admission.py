"""
Admission controller.

Decides what a booking attempt produces (a reservation, a waitlist entry or
a rejection) and unwinds the waitlist when a blocking reservation becomes
Confirmed or is released. Also exposes the public group operations, which
take the court locks and the transaction around apply_group_transition().

Admission is uniform: no requester identity or role changes the outcome.
"""

import logging

from database import transaction
from extensions import price_oracle
from models.calendar import load_business_calendar
from models.config import PROMOTION_POSITION, get_promotion_policy, is_waitlist_enabled
from models.conflicts import find_blocking, find_provisional_conflicts
from models.deadline import compute_deadline, get_payment_window
from models.interval import Interval
from models.reservation import (
    APPROVAL_PENDING, PAYMENT_UNPAID, LIFECYCLE_EXPIRED,
    get_court, get_reservation, insert_reservation, is_provisional, reject_ungrouped_reservation
)
from models.reservation_group import create_group, get_group, get_group_court_ids
from models.reservation_state import (
    ACTION_APPROVE, ACTION_CANCEL, ACTION_CHECK_IN, ACTION_COMPLETE, ACTION_PAY, ACTION_REJECT,
    apply_group_transition, effects_as_dict, new_effects
)
from models.waitlist import (
    WAITLIST_CANCELLED, WAITLIST_CONVERTED, WAITLIST_EXPIRED, WAITLIST_NOTIFIED,
    WAITLIST_PENDING, create_waitlist_entry, get_entries_blocked_by,
    get_entry_for_promoted_reservation, get_pending_entries_for_slot, get_waitlist_entry,
    mark_entry_notified, rebind_entry, set_entry_state
)
from utils.datetime_helpers import format_instant, get_local_now
from utils.exceptions import BusyError, ValidationError
from utils.locks import court_lock, court_locks
from utils.notifications import (
    EVENT_RESERVATION_CREATED, EVENT_WAITLISTED, EVENT_WAITLIST_CANCELLED,
    EVENT_WAITLIST_PROMOTED, queue_notification
)

logger = logging.getLogger(__name__)

# Booking outcomes
OUTCOME_RESERVED = 'reserved'
OUTCOME_WAITLISTED = 'waitlisted'
OUTCOME_REJECTED = 'rejected'

# Rejection reasons
REASON_SLOT_CONFIRMED = 'slot_confirmed'
REASON_SLOT_PENDING = 'slot_pending'


# =============================================================================
# BOOKING
# =============================================================================

def _validate_requester(requester_id) -> int:
    try:
        value = int(requester_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid requester id: {requester_id!r}")
    if value <= 0:
        raise ValidationError(f"Invalid requester id: {requester_id!r}")
    return value


def _group_for_booking(cursor, group_id: int, requester_id: int) -> dict:
    """Load a group the requester is adding a line item to."""
    group = get_group(group_id, cursor=cursor)
    if not group:
        raise ValidationError(f"Reservation group {group_id} not found")
    if group['requester_id'] != requester_id:
        raise ValidationError(f"Reservation group {group_id} belongs to another requester")
    if group['approval_state'] != APPROVAL_PENDING or group['payment_state'] != PAYMENT_UNPAID:
        raise ValidationError(f"Reservation group {group_id} no longer accepts line items")
    return group


def attempt_booking(requester_id: int, court_id: int, start, end, group_id: int = None,
                    now=None) -> dict:
    """
    Try to book a court interval.

    Steps, under the court lock and in one transaction:
    1. A Confirmed reservation overlaps -> rejected (slot_confirmed)
    2. Nothing provisional overlaps -> reservation created (reserved)
    3. Otherwise -> waitlist entry behind the oldest provisional conflict
       (waitlisted), or rejected (slot_pending) when the waitlist is off

    Args:
        requester_id: Requester ID
        court_id: Court ID
        start: Start instant (datetime or 'YYYY-MM-DD HH:MM:SS' / ISO string)
        end: End instant, absolute (may fall on the next day)
        group_id: Existing group to add the line item to (default: new group)
        now: Local instant of the attempt (default: current local time)

    Returns:
        dict: {'outcome': 'reserved', 'reservation': {...}, 'group_id': N}
              {'outcome': 'waitlisted', 'waitlist_entry': {...}}
              {'outcome': 'rejected', 'reason': 'slot_confirmed' | 'slot_pending', ...}

    Raises:
        ValidationError: Malformed interval, unknown/inactive court, bad group
        BusyError: Court lock or database write lock not obtained in time
    """
    requester_id = _validate_requester(requester_id)
    interval = Interval.parse(court_id, start, end)
    now = now or get_local_now()

    court = get_court(interval.court_id)
    if not court or not court['active']:
        raise ValidationError(f"Court {court_id} not found or inactive")

    calendar = load_business_calendar()
    window = get_payment_window()

    with court_lock(interval.court_id):
        with transaction() as db:
            cursor = db.cursor()
            group = _group_for_booking(cursor, group_id, requester_id) if group_id is not None else None

            blocker = find_blocking(cursor, interval)
            if blocker:
                logger.info(f"Booking {interval.as_dict()} rejected: confirmed reservation {blocker['id']}")
                return {
                    'outcome': OUTCOME_REJECTED,
                    'reason': REASON_SLOT_CONFIRMED,
                    'blocking_reservation_id': blocker['id'],
                }

            conflicts = find_provisional_conflicts(cursor, interval)
            if group and any(c['group_id'] == group['id'] for c in conflicts):
                raise ValidationError("Interval overlaps another line item of the same group")

            if not conflicts:
                if group is None:
                    group = create_group(cursor, requester_id, now)
                deadline = compute_deadline(now, calendar, window)
                reservation_id = insert_reservation(
                    cursor, requester_id, interval, group, now,
                    payment_deadline=deadline,
                    price=price_oracle.price(interval.court_id, interval)
                )
                reservation = get_reservation(reservation_id, cursor=cursor)
                queue_notification(requester_id, EVENT_RESERVATION_CREATED, {
                    'reservation_id': reservation_id,
                    'group_id': group['id'],
                    'payment_deadline': reservation['payment_deadline'],
                })
                logger.info(f"Reservation {reservation_id} created for requester {requester_id}")
                return {
                    'outcome': OUTCOME_RESERVED,
                    'reservation': reservation,
                    'group_id': group['id'],
                }

            if not is_waitlist_enabled():
                return {
                    'outcome': OUTCOME_REJECTED,
                    'reason': REASON_SLOT_PENDING,
                    'blocking_reservation_id': conflicts[0]['id'],
                }

            entry = create_waitlist_entry(cursor, requester_id, interval, conflicts[0]['id'], now)
            queue_notification(requester_id, EVENT_WAITLISTED, {
                'waitlist_entry_id': entry['id'],
                'position': entry['position'],
                **interval.as_dict(),
            })
            logger.info(
                f"Requester {requester_id} waitlisted at position {entry['position']} "
                f"behind reservation {conflicts[0]['id']}"
            )
            return {'outcome': OUTCOME_WAITLISTED, 'waitlist_entry': entry}


# =============================================================================
# RESOLUTION
# =============================================================================

def _cancel_entry(cursor, entry: dict, changed_by: str, reason: str, effects: dict) -> None:
    if set_entry_state(cursor, entry, WAITLIST_CANCELLED, changed_by, reason):
        effects['waitlist_entries'].add(entry['id'])
        effects['cancelled_entries'].append(entry['id'])
        queue_notification(entry['requester_id'], EVENT_WAITLIST_CANCELLED, {
            'waitlist_entry_id': entry['id'],
            'reason': reason,
        })


def _reject_loser(cursor, loser: dict, winner: dict, now, changed_by: str, effects: dict) -> None:
    """A provisional reservation lost its slot to `winner`; reject it through its group."""
    reason = f"slot confirmed by reservation {winner['id']}"

    origin = get_entry_for_promoted_reservation(cursor, loser['id'])
    if origin and origin['state'] == WAITLIST_NOTIFIED:
        _cancel_entry(cursor, origin, changed_by, reason, effects)

    if loser['group_id'] is not None and get_group(loser['group_id'], cursor=cursor):
        apply_group_transition(cursor, loser['group_id'], ACTION_REJECT, now,
                               changed_by=changed_by, reason=reason, effects=effects)
    else:
        # No group to cascade from: reject the row itself
        if reject_ungrouped_reservation(cursor, loser['id'], changed_by, reason):
            effects['reservations'].add(loser['id'])
            effects['rejected_reservations'].append(loser['id'])
            loser = get_reservation(loser['id'], cursor=cursor)
            resolve_released(cursor, loser, now, changed_by=changed_by, effects=effects)


def resolve_confirmed(cursor, reservation: dict, now, changed_by: str = 'system',
                      effects: dict = None) -> dict:
    """
    Unwind the waitlist of a reservation that just became Confirmed.

    Entries queued behind it are cancelled; every other provisional
    reservation overlapping it (including promoted ones) lost the race and
    is rejected through its group. A promoted reservation's own entry
    becomes converted.

    Returns:
        dict: The effects record
    """
    if effects is None:
        effects = new_effects()

    if reservation.get('origin_waitlist_entry_id'):
        origin = get_waitlist_entry(reservation['origin_waitlist_entry_id'], cursor=cursor)
        if origin and origin['state'] == WAITLIST_NOTIFIED:
            set_entry_state(cursor, origin, WAITLIST_CONVERTED, changed_by,
                            f"reservation {reservation['id']} confirmed")
            effects['waitlist_entries'].add(origin['id'])

    reason = f"slot confirmed by reservation {reservation['id']}"
    for entry in get_entries_blocked_by(cursor, reservation['id']):
        _cancel_entry(cursor, entry, changed_by, reason, effects)
        if entry['promoted_reservation_id']:
            promoted = get_reservation(entry['promoted_reservation_id'], cursor=cursor)
            if promoted and is_provisional(promoted):
                _reject_loser(cursor, promoted, reservation, now, changed_by, effects)

    interval = Interval.from_row(reservation)
    for loser in find_provisional_conflicts(cursor, interval, exclude_group_id=reservation['group_id']):
        # An earlier loser's group cascade may already have released this one
        current = get_reservation(loser['id'], cursor=cursor)
        if current and is_provisional(current):
            _reject_loser(cursor, current, reservation, now, changed_by, effects)

    return effects


def _promote(cursor, entry: dict, interval: Interval, now, calendar, window,
             changed_by: str, effects: dict) -> int:
    """Give a waitlisted requester their own provisional reservation."""
    group = create_group(cursor, entry['requester_id'], now)
    deadline = compute_deadline(now, calendar, window)
    reservation_id = insert_reservation(
        cursor, entry['requester_id'], interval, group, now,
        payment_deadline=deadline,
        price=price_oracle.price(interval.court_id, interval),
        origin_waitlist_entry_id=entry['id']
    )
    mark_entry_notified(cursor, entry, reservation_id, now, deadline, changed_by)

    effects['groups'].add(group['id'])
    effects['reservations'].add(reservation_id)
    effects['waitlist_entries'].add(entry['id'])
    effects['promoted'].append(reservation_id)

    queue_notification(entry['requester_id'], EVENT_WAITLIST_PROMOTED, {
        'waitlist_entry_id': entry['id'],
        'reservation_id': reservation_id,
        'group_id': group['id'],
        'payment_deadline': format_instant(deadline),
        **interval.as_dict(),
    })
    logger.info(f"Waitlist entry {entry['id']} promoted to reservation {reservation_id}")
    return reservation_id


def resolve_released(cursor, reservation: dict, now, changed_by: str = 'system',
                     effects: dict = None, cause: str = 'rejected') -> dict:
    """
    Unwind the waitlist of a reservation that stopped blocking.

    Pending entries bound to it, or queued for its exact court interval,
    are re-evaluated in position order: cancelled when a Confirmed
    reservation now holds the slot, rebound when another provisional
    reservation still does, and promoted otherwise. Under the position
    policy only the first entry of a queue is promoted and the rest wait
    behind it.

    Args:
        cursor: Active transaction cursor
        reservation: Released reservation (rejected, cancelled or expired)
        now: Local instant of the release
        changed_by: Actor recorded in history
        effects: Effects record to extend
        cause: 'rejected', 'cancelled' or 'expired'

    Returns:
        dict: The effects record
    """
    if effects is None:
        effects = new_effects()

    # The requester promoted into this reservation gives up their claim
    origin = get_entry_for_promoted_reservation(cursor, reservation['id'])
    if origin and origin['state'] == WAITLIST_NOTIFIED:
        new_state = WAITLIST_EXPIRED if cause == LIFECYCLE_EXPIRED else WAITLIST_CANCELLED
        if set_entry_state(cursor, origin, new_state, changed_by,
                           f"promoted reservation {reservation['id']} {cause}"):
            effects['waitlist_entries'].add(origin['id'])
            key = 'expired_entries' if new_state == WAITLIST_EXPIRED else 'cancelled_entries'
            effects[key].append(origin['id'])

    entries = {e['id']: e for e in get_entries_blocked_by(cursor, reservation['id'], states=(WAITLIST_PENDING,))}
    for e in get_pending_entries_for_slot(cursor, reservation['court_id'],
                                          reservation['start_at'], reservation['end_at']):
        entries.setdefault(e['id'], e)
    if not entries:
        return effects

    calendar = load_business_calendar()
    window = get_payment_window()
    policy = get_promotion_policy()
    promoted_for_slot = {}

    for entry in sorted(entries.values(), key=lambda e: (e['position'], e['id'])):
        interval = Interval.from_row(entry)
        slot = (interval.court_id, interval.start_str, interval.end_str)

        blocker = find_blocking(cursor, interval)
        if blocker:
            _cancel_entry(cursor, entry, changed_by,
                          f"slot confirmed by reservation {blocker['id']}", effects)
            continue

        others = find_provisional_conflicts(cursor, interval, exclude_ids=effects['promoted'])
        if others:
            rebind_entry(cursor, entry, others[0]['id'], changed_by)
            effects['waitlist_entries'].add(entry['id'])
            continue

        if policy == PROMOTION_POSITION and slot in promoted_for_slot:
            rebind_entry(cursor, entry, promoted_for_slot[slot], changed_by)
            effects['waitlist_entries'].add(entry['id'])
            continue

        promoted_for_slot[slot] = _promote(cursor, entry, interval, now, calendar, window,
                                           changed_by, effects)

    return effects


# =============================================================================
# PUBLIC GROUP OPERATIONS
# =============================================================================

def _run_group_action(group_id: int, action: str, changed_by: str = 'system',
                      reason: str = '', now=None) -> dict:
    """
    Lock every court of the group, then apply one transition in one transaction.

    Returns:
        dict: {'status': 'ok' | 'already_terminal', 'touched': {...}}
    """
    now = now or get_local_now()
    if not get_group(group_id):
        raise ValidationError(f"Reservation group {group_id} not found")

    court_ids = get_group_court_ids(group_id)
    with court_locks(court_ids):
        with transaction() as db:
            cursor = db.cursor()
            if not set(get_group_court_ids(group_id)) <= set(court_ids):
                raise BusyError("Reservation group changed while waiting, retry")
            effects = new_effects()
            status = apply_group_transition(cursor, group_id, action, now,
                                            changed_by=changed_by, reason=reason, effects=effects)

    return {'status': status, 'touched': effects_as_dict(effects)}


def approve_group(group_id: int, changed_by: str = 'system', now=None) -> dict:
    """Approve a group (operator action)."""
    return _run_group_action(group_id, ACTION_APPROVE, changed_by, now=now)


def reject_group(group_id: int, reason: str = '', changed_by: str = 'system', now=None) -> dict:
    """Reject a group; its reservations release their slots."""
    return _run_group_action(group_id, ACTION_REJECT, changed_by, reason=reason, now=now)


def record_payment(group_id: int, changed_by: str = 'system', now=None) -> dict:
    """Mark a group paid."""
    return _run_group_action(group_id, ACTION_PAY, changed_by, now=now)


def cancel_group(group_id: int, reason: str = '', changed_by: str = 'system', now=None) -> dict:
    return _run_group_action(group_id, ACTION_CANCEL, changed_by, reason=reason, now=now)


def check_in_group(group_id: int, changed_by: str = 'system', now=None) -> dict:
    return _run_group_action(group_id, ACTION_CHECK_IN, changed_by, now=now)


def complete_group(group_id: int, changed_by: str = 'system', now=None) -> dict:
    return _run_group_action(group_id, ACTION_COMPLETE, changed_by, now=now)

