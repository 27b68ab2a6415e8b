"""
Consistency reconciler.

Safety net that looks for drift the normal cascade should never leave
behind: line items disagreeing with their group, dangling references and
overlapping Confirmed reservations. Unambiguous drift is repaired through
the same cascade primitives the state machine uses; everything else is
flagged for manual review. Nothing is ever deleted.

Runs without court locks, in one `BEGIN IMMEDIATE` transaction; each repair
sits in its own savepoint so a repair that cannot be applied is downgraded
to a flag instead of aborting the pass.
"""

import logging

from database import get_db, transaction
from models.audit_log import create_audit_log
from models.conflicts import find_confirmed_overlaps
from models.reservation import (
    LIFECYCLE_CANCELLED, RELEASED_SQL, get_reservation, is_confirmed, is_released,
    set_lifecycle_state
)
from models.reservation_group import get_group
from models.reservation_state import (
    cascade_group_state, new_effects, resolve_newly_confirmed, resolve_newly_released
)
from models.waitlist import WAITLIST_CANCELLED, WAITLIST_OPEN_STATES, get_waitlist_entry, set_entry_state
from utils.datetime_helpers import get_local_now
from utils.exceptions import ConsistencyViolation, ValidationError

logger = logging.getLogger(__name__)

ACTOR = 'reconciler'

KIND_LINE_ITEM_DRIFT = 'line_item_drift'
KIND_ORPHAN_GROUP = 'orphan_group_reference'
KIND_ORPHAN_BLOCKER = 'orphan_blocking_reference'
KIND_CONVERTED_WITHOUT_RESERVATION = 'converted_without_reservation'
KIND_CONFIRMED_OVERLAP = 'confirmed_overlap'


# =============================================================================
# DETECTION
# =============================================================================

def find_line_item_drift(cursor) -> list:
    """Line items whose approval/payment differ from their group's."""
    cursor.execute('''
        SELECT r.id, r.group_id, r.approval_state, r.payment_state,
               g.approval_state AS group_approval_state,
               g.payment_state AS group_payment_state
        FROM reservations r
        JOIN reservation_groups g ON g.id = r.group_id
        WHERE r.approval_state != g.approval_state
           OR r.payment_state != g.payment_state
        ORDER BY r.group_id, r.id
    ''')
    return [
        ConsistencyViolation(
            KIND_LINE_ITEM_DRIFT, 'reservation', row['id'],
            before={'group_id': row['group_id'],
                    'approval_state': row['approval_state'],
                    'payment_state': row['payment_state']},
            after={'approval_state': row['group_approval_state'],
                   'payment_state': row['group_payment_state']},
            repairable=True
        )
        for row in cursor.fetchall()
    ]


def find_orphan_group_references(cursor) -> list:
    """Reservations pointing at a group that does not exist."""
    cursor.execute(f'''
        SELECT r.id, r.group_id, r.lifecycle_state, ({RELEASED_SQL}) AS released
        FROM reservations r
        LEFT JOIN reservation_groups g ON g.id = r.group_id
        WHERE r.group_id IS NOT NULL AND g.id IS NULL
        ORDER BY r.id
    ''')
    return [
        ConsistencyViolation(
            KIND_ORPHAN_GROUP, 'reservation', row['id'],
            before={'group_id': row['group_id'], 'lifecycle_state': row['lifecycle_state']},
            after={'lifecycle_state': row['lifecycle_state'] if row['released'] else LIFECYCLE_CANCELLED}
        )
        for row in cursor.fetchall()
    ]


def find_orphan_blocking_references(cursor) -> list:
    """Waitlist entries whose blocking reservation is missing."""
    cursor.execute('''
        SELECT w.id, w.blocking_reservation_id, w.state
        FROM waitlist_entries w
        LEFT JOIN reservations r ON r.id = w.blocking_reservation_id
        WHERE r.id IS NULL
          AND (w.blocking_reservation_id IS NOT NULL OR w.state = 'pending')
        ORDER BY w.id
    ''')
    violations = []
    for row in cursor.fetchall():
        open_entry = row['state'] in WAITLIST_OPEN_STATES
        violations.append(ConsistencyViolation(
            KIND_ORPHAN_BLOCKER, 'waitlist_entry', row['id'],
            before={'blocking_reservation_id': row['blocking_reservation_id'], 'state': row['state']},
            after={'state': WAITLIST_CANCELLED if open_entry else row['state']}
        ))
    return violations


def find_converted_without_reservation(cursor) -> list:
    """Converted entries with no promoted reservation to show for it."""
    cursor.execute('''
        SELECT w.id, w.promoted_reservation_id
        FROM waitlist_entries w
        LEFT JOIN reservations r ON r.id = w.promoted_reservation_id
        WHERE w.state = 'converted' AND r.id IS NULL
        ORDER BY w.id
    ''')
    return [
        ConsistencyViolation(
            KIND_CONVERTED_WITHOUT_RESERVATION, 'waitlist_entry', row['id'],
            before={'state': 'converted', 'promoted_reservation_id': row['promoted_reservation_id']}
        )
        for row in cursor.fetchall()
    ]


def find_confirmed_overlap_violations(cursor) -> list:
    """Pairs of Confirmed reservations sharing court time."""
    return [
        ConsistencyViolation(
            KIND_CONFIRMED_OVERLAP, 'reservation', pair['first_id'],
            before={'court_id': pair['court_id'], 'overlaps_reservation_id': pair['second_id']}
        )
        for pair in find_confirmed_overlaps(cursor)
    ]


DETECTORS = (
    find_line_item_drift,
    find_orphan_group_references,
    find_orphan_blocking_references,
    find_converted_without_reservation,
    find_confirmed_overlap_violations,
)


# =============================================================================
# HANDLING
# =============================================================================

def _repair_group(cursor, group_id: int, now, effects: dict) -> None:
    """Re-apply a group's state to its line items, then unwind what that changed."""
    group = get_group(group_id, cursor=cursor)
    cursor.execute('SELECT * FROM reservations WHERE group_id = ?', (group_id,))
    items = [dict(row) for row in cursor.fetchall()]
    was_confirmed = {item['id']: is_confirmed(item) for item in items}
    was_released = {item['id']: is_released(item) for item in items}

    cascade_group_state(cursor, group, ACTOR, 'reconciliation repair', effects)
    resolve_newly_released(cursor, group, was_released, now, ACTOR, effects, cause='rejected')
    resolve_newly_confirmed(cursor, group, was_confirmed, now, ACTOR, effects)


def _apply(cursor, violation: ConsistencyViolation, now, repaired_groups: set) -> bool:
    """
    Apply the fix for one violation.

    Returns:
        bool: True when the violation counts as repaired, False when flagged
    """
    effects = new_effects()

    if violation.kind == KIND_LINE_ITEM_DRIFT:
        group_id = violation.before['group_id']
        if group_id not in repaired_groups:
            _repair_group(cursor, group_id, now, effects)
            repaired_groups.add(group_id)
        return True

    if violation.kind == KIND_ORPHAN_GROUP:
        reservation = get_reservation(violation.entity_id, cursor=cursor)
        if reservation and not is_released(reservation):
            from models.admission import resolve_released

            set_lifecycle_state(cursor, reservation['id'], LIFECYCLE_CANCELLED, ACTOR,
                                f"reconciliation: group {violation.before['group_id']} missing")
            reservation['lifecycle_state'] = LIFECYCLE_CANCELLED
            resolve_released(cursor, reservation, now, changed_by=ACTOR, effects=effects,
                             cause=LIFECYCLE_CANCELLED)
        return False

    if violation.kind == KIND_ORPHAN_BLOCKER:
        entry = get_waitlist_entry(violation.entity_id, cursor=cursor)
        if entry and entry['state'] in WAITLIST_OPEN_STATES:
            set_entry_state(cursor, entry, WAITLIST_CANCELLED, ACTOR,
                            'reconciliation: blocking reservation missing')
        return False

    # Converted without reservation, confirmed overlap: manual review only
    return False


def _record(cursor, violation: ConsistencyViolation, action: str) -> None:
    logger.warning(
        f"Consistency violation {violation.kind} on {violation.entity_type} "
        f"#{violation.entity_id} ({action}): before={violation.before} after={violation.after}"
    )
    if cursor is not None:
        create_audit_log(
            action=action,
            entity_type=violation.entity_type,
            entity_id=violation.entity_id,
            actor=ACTOR,
            changes=violation.as_dict(),
            cursor=cursor
        )


def run_reconciliation(dry_run: bool = False, now=None) -> dict:
    """
    Detect and repair drift.

    Must not be called while holding a court lock.

    Args:
        dry_run: Detect and log only; write nothing
        now: Local instant used for any promotion deadlines (default: now)

    Returns:
        dict: {'repaired_count', 'flagged_count', 'violations': [...]}; a dry run
              repairs nothing and adds 'repairable_count' and 'dry_run'
    """
    now = now or get_local_now()
    summary = {'repaired_count': 0, 'flagged_count': 0, 'violations': []}

    if dry_run:
        summary['repairable_count'] = 0
        cursor = get_db().cursor()
        for detector in DETECTORS:
            for violation in detector(cursor):
                _record(None, violation, 'DETECT')
                summary['violations'].append(violation.as_dict())
                if violation.repairable:
                    summary['repairable_count'] += 1
                else:
                    summary['flagged_count'] += 1
        summary['dry_run'] = True
        return summary

    repaired_groups = set()
    with transaction() as db:
        cursor = db.cursor()
        for detector in DETECTORS:
            for violation in detector(cursor):
                cursor.execute('SAVEPOINT reconcile_item')
                try:
                    repaired = _apply(cursor, violation, now, repaired_groups)
                except ValidationError as e:
                    cursor.execute('ROLLBACK TO SAVEPOINT reconcile_item')
                    violation.after = {'repair_failed': str(e)}
                    repaired = False
                cursor.execute('RELEASE SAVEPOINT reconcile_item')

                _record(cursor, violation, 'REPAIR' if repaired else 'FLAG')
                summary['violations'].append(violation.as_dict())
                summary['repaired_count' if repaired else 'flagged_count'] += 1

    logger.info(
        f"Reconciliation: {summary['repaired_count']} repaired, "
        f"{summary['flagged_count']} flagged"
    )
    return summary
