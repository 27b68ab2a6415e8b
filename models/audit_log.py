"""
Audit Log model and data access functions.
Handles audit log creation, retrieval and filtering.
"""

import json

from database import get_db


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_audit_logs(
    actor: str = None,
    action: str = None,
    entity_type: str = None,
    entity_id: int = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    """
    Get audit logs with optional filtering, newest first.

    Args:
        actor: Filter by actor (operator username or 'system'/'sweeper'/'reconciler')
        action: Filter by action type
        entity_type: Filter by entity type (group, reservation, waitlist_entry)
        entity_id: Filter by specific entity ID
        limit: Maximum number of records to return (default 100)
        offset: Number of records to skip for pagination

    Returns:
        List of audit log dicts with decoded 'changes'
    """
    query = 'SELECT * FROM audit_log WHERE 1=1'
    params = []

    if actor:
        query += ' AND actor = ?'
        params.append(actor)
    if action:
        query += ' AND action = ?'
        params.append(action)
    if entity_type:
        query += ' AND entity_type = ?'
        params.append(entity_type)
    if entity_id is not None:
        query += ' AND entity_id = ?'
        params.append(entity_id)

    query += ' ORDER BY id DESC LIMIT ? OFFSET ?'
    params.extend([limit, offset])

    cursor = get_db().cursor()
    cursor.execute(query, params)
    return [_decode(row) for row in cursor.fetchall()]


def get_audit_logs_for_entity(entity_type: str, entity_id: int, limit: int = 50) -> list:
    """Get the audit trail of one entity, newest first."""
    return get_audit_logs(entity_type=entity_type, entity_id=entity_id, limit=limit)


def _decode(row) -> dict:
    entry = dict(row)
    if entry.get('changes'):
        try:
            entry['changes'] = json.loads(entry['changes'])
        except (TypeError, ValueError):
            pass
    return entry


# =============================================================================
# CREATE OPERATIONS
# =============================================================================

def create_audit_log(
    action: str,
    entity_type: str,
    entity_id: int = None,
    actor: str = None,
    changes: dict = None,
    ip_address: str = None,
    user_agent: str = None,
    cursor=None
) -> int:
    """
    Create a new audit log entry.

    With a cursor the row joins the caller's transaction; without one it is
    written and committed on its own.

    Args:
        action: Action type (APPROVE, REJECT, REPAIR, FLAG, ...)
        entity_type: Entity type (group, reservation, waitlist_entry)
        entity_id: ID of the affected entity
        actor: Who performed the action ('system' when None)
        changes: Dictionary with before/after state
        ip_address: Client IP address
        user_agent: Client user agent string
        cursor: Optional cursor of an open transaction

    Returns:
        New audit log ID
    """
    changes_json = None
    if changes is not None:
        changes_json = json.dumps(changes, default=str, ensure_ascii=False)

    db = None
    if cursor is None:
        db = get_db()
        cursor = db.cursor()

    cursor.execute('''
        INSERT INTO audit_log
        (actor, action, entity_type, entity_id, changes, ip_address, user_agent)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    ''', (actor or 'system', action, entity_type, entity_id, changes_json, ip_address, user_agent))

    if db is not None:
        db.commit()
    return cursor.lastrowid

