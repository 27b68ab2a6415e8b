"""
Reservation group API routes.
Operator transitions (approve, reject, payment, check-in, completion) and
requester actions (cancel, payment proof).
"""

import logging

from flask import request
from flask_login import login_required, current_user

from models.admission import (
    approve_group, reject_group, record_payment, cancel_group,
    check_in_group, complete_group
)
from models.reservation import serialize_reservation
from models.audit_log import get_audit_logs_for_entity
from models.reservation_group import (
    attach_payment_proof, get_group, get_group_with_items, get_groups_by_requester, grant_no_expiry
)
from utils.api_response import api_success, api_error
from utils.audit import audit_action, current_actor

logger = logging.getLogger(__name__)


def _transition_response(result: dict):
    """Shape a group operation result; already_terminal is a 200 no-op."""
    return api_success(data=result)


def _requester_may_act(group_id: int, data: dict) -> bool:
    """Operators may always act; requesters only on their own group."""
    if current_user.is_authenticated:
        return True
    group = get_group(group_id)
    try:
        return bool(group) and int(data.get('requester_id')) == group['requester_id']
    except (TypeError, ValueError):
        return False


def register_routes(bp):
    """Register group routes on the blueprint."""

    @bp.route('/groups/<int:group_id>', methods=['GET'])
    def group_detail(group_id):
        """Get a group with its line items; operators also see its audit trail."""
        group = get_group_with_items(group_id)
        if not group:
            return api_error('Reservation group not found', status=404)
        group['reservations'] = [serialize_reservation(r) for r in group['reservations']]
        if current_user.is_authenticated:
            group['audit'] = get_audit_logs_for_entity('group', group_id)
        return api_success(data=group)

    @bp.route('/requesters/<int:requester_id>/groups', methods=['GET'])
    def requester_groups(requester_id):
        """List a requester's groups, newest first."""
        groups = get_groups_by_requester(requester_id)
        return api_success(data=groups, count=len(groups))

    @bp.route('/groups/<int:group_id>/approve', methods=['POST'])
    @login_required
    @audit_action('APPROVE', 'group', entity_id_param='group_id')
    def group_approve(group_id):
        """Approve a group."""
        return _transition_response(approve_group(group_id, changed_by=current_actor()))

    @bp.route('/groups/<int:group_id>/reject', methods=['POST'])
    @login_required
    @audit_action('REJECT', 'group', entity_id_param='group_id')
    def group_reject(group_id):
        """
        Reject a group.

        Request body (JSON):
            reason: Rejection reason (optional)
        """
        data = request.get_json(silent=True) or {}
        result = reject_group(group_id, reason=data.get('reason', ''), changed_by=current_actor())
        return _transition_response(result)

    @bp.route('/groups/<int:group_id>/payment', methods=['POST'])
    @login_required
    @audit_action('PAY', 'group', entity_id_param='group_id')
    def group_payment(group_id):
        """Record payment for a group."""
        return _transition_response(record_payment(group_id, changed_by=current_actor()))

    @bp.route('/groups/<int:group_id>/check-in', methods=['POST'])
    @login_required
    @audit_action('CHECK_IN', 'group', entity_id_param='group_id')
    def group_check_in(group_id):
        return _transition_response(check_in_group(group_id, changed_by=current_actor()))

    @bp.route('/groups/<int:group_id>/complete', methods=['POST'])
    @login_required
    @audit_action('COMPLETE', 'group', entity_id_param='group_id')
    def group_complete(group_id):
        return _transition_response(complete_group(group_id, changed_by=current_actor()))

    @bp.route('/groups/<int:group_id>/no-expiry', methods=['POST'])
    @login_required
    @audit_action('NO_EXPIRY', 'group', entity_id_param='group_id')
    def group_no_expiry(group_id):
        """
        Grant or revoke the no-expiry capability.

        Request body (JSON):
            enabled: bool (default true)
        """
        data = request.get_json(silent=True) or {}
        group = grant_no_expiry(group_id, changed_by=current_actor(),
                                enabled=bool(data.get('enabled', True)))
        return api_success(data=group)

    @bp.route('/groups/<int:group_id>/cancel', methods=['POST'])
    @audit_action('CANCEL', 'group', entity_id_param='group_id')
    def group_cancel(group_id):
        """
        Cancel a group's active reservations.

        Request body (JSON):
            requester_id: Required unless called by an operator
            reason: Cancellation reason (optional)
        """
        data = request.get_json(silent=True) or {}
        if not get_group(group_id):
            return api_error('Reservation group not found', status=404)
        if not _requester_may_act(group_id, data):
            return api_error('Not allowed to cancel this group', status=403)

        actor = current_actor(default=f"requester:{data.get('requester_id')}")
        result = cancel_group(group_id, reason=data.get('reason', ''), changed_by=actor)
        return _transition_response(result)

    @bp.route('/groups/<int:group_id>/payment-proof', methods=['POST'])
    @audit_action('PAYMENT_PROOF', 'group', entity_id_param='group_id')
    def group_payment_proof(group_id):
        """
        Attach an opaque payment-proof reference.

        Request body (JSON):
            requester_id: Required unless called by an operator
            proof_ref: Reference to the stored artifact (required)
        """
        data = request.get_json(silent=True) or {}
        if not get_group(group_id):
            return api_error('Reservation group not found', status=404)
        if not _requester_may_act(group_id, data):
            return api_error('Not allowed to update this group', status=403)

        actor = current_actor(default=f"requester:{data.get('requester_id')}")
        group = attach_payment_proof(group_id, data.get('proof_ref'), changed_by=actor)
        return api_success(data=group)
