"""
Waitlist API routes.
Read-only views of the waitlist queues.
"""

from flask import request

from models.reservation import get_status_history
from models.waitlist import get_waitlist, get_waitlist_entry, WAITLIST_STATES
from utils.api_response import api_success, api_error


def register_routes(bp):
    """Register waitlist routes on the blueprint."""

    @bp.route('/waitlist', methods=['GET'])
    def list_waitlist():
        """
        List waitlist entries.

        Query params:
            court_id: Filter by court (optional)
            state: Filter by entry state (optional)
            requester_id: Filter by requester (optional)

        Returns:
            JSON list of entries ordered by slot and position
        """
        state = request.args.get('state')
        if state and state not in WAITLIST_STATES:
            return api_error(f"Unknown waitlist state: {state}", status=400)

        entries = get_waitlist(
            court_id=request.args.get('court_id', type=int),
            state=state,
            requester_id=request.args.get('requester_id', type=int)
        )
        return api_success(data=entries, count=len(entries))

    @bp.route('/waitlist/<int:entry_id>', methods=['GET'])
    def waitlist_entry_detail(entry_id):
        """Get one waitlist entry with its state history."""
        entry = get_waitlist_entry(entry_id)
        if not entry:
            return api_error('Waitlist entry not found', status=404)
        entry['history'] = get_status_history('waitlist_entry', entry_id)
        return api_success(data=entry)
