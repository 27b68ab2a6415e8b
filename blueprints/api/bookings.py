"""
Booking API routes.
Booking attempts and reservation reads.
"""

import logging

from flask import request

from models.admission import attempt_booking, OUTCOME_RESERVED, OUTCOME_WAITLISTED
from models.reservation import (
    get_reservation, get_reservations_for_court, get_status_history, serialize_reservation
)
from utils.api_response import api_success, api_error

logger = logging.getLogger(__name__)

OUTCOME_STATUS = {
    OUTCOME_RESERVED: 201,
    OUTCOME_WAITLISTED: 202,
}


def register_routes(bp):
    """Register booking routes on the blueprint."""

    @bp.route('/bookings', methods=['POST'])
    def create_booking():
        """
        Attempt a booking.

        Request body (JSON):
            requester_id: Requester ID (required)
            court_id: Court ID (required)
            start: Start instant 'YYYY-MM-DD HH:MM:SS' (required)
            end: End instant, absolute (required)
            group_id: Existing group to add the line item to (optional)

        Returns:
            201 reserved, 202 waitlisted, 409 rejected (slot_confirmed / slot_pending)
        """
        data = request.get_json(silent=True) or {}
        missing = [key for key in ('requester_id', 'court_id', 'start', 'end') if data.get(key) in (None, '')]
        if missing:
            return api_error(f"Missing fields: {', '.join(missing)}", status=400)

        result = attempt_booking(
            requester_id=data['requester_id'],
            court_id=data['court_id'],
            start=data['start'],
            end=data['end'],
            group_id=data.get('group_id')
        )

        outcome = result['outcome']
        if outcome == OUTCOME_RESERVED:
            result['reservation'] = serialize_reservation(result['reservation'])
        status = OUTCOME_STATUS.get(outcome, 409)
        return api_success(data=result, outcome=outcome, status=status)

    @bp.route('/reservations/<int:reservation_id>', methods=['GET'])
    def reservation_detail(reservation_id):
        """Get one reservation with its state history."""
        reservation = get_reservation(reservation_id)
        if not reservation:
            return api_error('Reservation not found', status=404)

        data = serialize_reservation(reservation)
        data['history'] = get_status_history('reservation', reservation_id)
        return api_success(data=data)

    @bp.route('/courts/<int:court_id>/reservations', methods=['GET'])
    def court_reservations(court_id):
        """
        List a court's reservations.

        Query params:
            start: Only reservations overlapping [start, end) (optional)
            end: See start
        """
        reservations = get_reservations_for_court(
            court_id,
            start=request.args.get('start'),
            end=request.args.get('end')
        )
        return api_success(data=[serialize_reservation(r) for r in reservations],
                           count=len(reservations))
