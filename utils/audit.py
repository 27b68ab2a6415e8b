"""
Audit logging utility functions and decorators.
Provides automatic and manual audit logging for operator actions.
"""

import logging
from functools import wraps

from flask import request
from flask_login import current_user

# Configure logger for audit operations
logger = logging.getLogger(__name__)


def current_actor(default: str = 'system') -> str:
    """Username of the authenticated operator, or `default` outside a request."""
    try:
        if current_user and current_user.is_authenticated:
            return current_user.username
    except (RuntimeError, AttributeError):
        pass
    return default


def log_audit(
    action: str,
    entity_type: str,
    entity_id: int = None,
    before: dict = None,
    after: dict = None,
    actor: str = None
) -> int:
    """
    Log an audit entry manually.

    Captures the current operator, IP address and user agent from the
    request context when there is one.

    Args:
        action: Action type (APPROVE, REJECT, PAY, ...)
        entity_type: Entity type (group, reservation, ...)
        entity_id: ID of the affected entity
        before: Dictionary with entity state before the change
        after: Dictionary with entity state after the change
        actor: Override actor (defaults to current operator)

    Returns:
        New audit log ID, or None if logging failed
    """
    try:
        from models.audit_log import create_audit_log

        if actor is None:
            actor = current_actor()

        ip_address = None
        user_agent = None
        try:
            if request:
                ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
                if ip_address and ',' in ip_address:
                    ip_address = ip_address.split(',')[0].strip()
                user_agent = request.headers.get('User-Agent', '')[:255]
        except RuntimeError:
            # Outside request context (CLI, sweeper)
            pass

        changes = None
        if before is not None or after is not None:
            changes = {'before': before, 'after': after}

        return create_audit_log(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent
        )

    except Exception as e:
        # The state change is already committed at this point
        logger.error(f"Failed to log audit entry: {e}", exc_info=True)
        return None


def audit_action(action_type: str, entity_type: str, entity_id_param: str = None):
    """
    Decorator to log a route's action with the entity's before/after state.

    Usage:
        @api_bp.route('/groups/<int:group_id>/approve', methods=['POST'])
        @login_required
        @audit_action('APPROVE', 'group', entity_id_param='group_id')
        def approve(group_id):
            ...

    Args:
        action_type: Action type recorded in audit_log
        entity_type: Entity type ('group' or 'reservation')
        entity_id_param: Name of the route parameter containing entity ID
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            entity_id = kwargs.get(entity_id_param) if entity_id_param else None
            before_state = _get_entity_state(entity_type, entity_id) if entity_id else None

            result = func(*args, **kwargs)

            if _is_error_response(result):
                return result

            after_state = _get_entity_state(entity_type, entity_id) if entity_id else None
            log_audit(
                action=action_type,
                entity_type=entity_type,
                entity_id=entity_id,
                before=before_state,
                after=after_state,
                actor=current_actor(default=_requester_actor())
            )
            return result

        return wrapper
    return decorator


def _requester_actor() -> str:
    """'requester:<id>' for unauthenticated requester calls, else 'system'."""
    data = request.get_json(silent=True) or {}
    requester_id = data.get('requester_id') if isinstance(data, dict) else None
    return f"requester:{requester_id}" if requester_id is not None else 'system'


def _get_entity_state(entity_type: str, entity_id: int) -> dict:
    """
    Fetch current state of an entity for before/after comparison.

    Returns:
        Dictionary with entity state, or None if not found
    """
    if entity_type == 'group':
        from models.reservation_group import get_group
        group = get_group(entity_id)
        if group:
            return {
                'approval_state': group['approval_state'],
                'payment_state': group['payment_state'],
                'no_expiry': group['no_expiry'],
                'payment_proof_ref': group['payment_proof_ref'],
            }
    elif entity_type == 'reservation':
        from models.reservation import get_reservation
        reservation = get_reservation(entity_id)
        if reservation:
            return {
                'approval_state': reservation['approval_state'],
                'payment_state': reservation['payment_state'],
                'lifecycle_state': reservation['lifecycle_state'],
            }
    return None


def _is_error_response(result) -> bool:
    """Check whether a view result is an error response (status >= 400)."""
    if isinstance(result, tuple) and len(result) >= 2:
        status = result[1]
        return isinstance(status, int) and status >= 400
    return getattr(result, 'status_code', 200) >= 400
