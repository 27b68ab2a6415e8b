"""
Requester notifications.

The engine never talks to e-mail/SMS directly. State-changing code queues
notifications on the current application context while its transaction is
open; `database.transaction()` flushes the queue after COMMIT and discards
it on ROLLBACK, so a delivery failure can never undo a state change.

Delivery goes through the `notifier` extension (see extensions.py). The
default backend only logs; deployments plug a real sender via init_app.
"""

import logging
from typing import Callable, Optional

from flask import g

logger = logging.getLogger(__name__)

# Event kinds
EVENT_RESERVATION_CREATED = 'reservation_created'
EVENT_WAITLISTED = 'waitlisted'
EVENT_WAITLIST_PROMOTED = 'waitlist_promoted'
EVENT_WAITLIST_CANCELLED = 'waitlist_cancelled'
EVENT_RESERVATION_APPROVED = 'reservation_approved'
EVENT_RESERVATION_REJECTED = 'reservation_rejected'
EVENT_PAYMENT_RECORDED = 'payment_recorded'
EVENT_RESERVATION_EXPIRED = 'reservation_expired'
EVENT_RESERVATION_CANCELLED = 'reservation_cancelled'


def log_backend(requester_id: int, event_kind: str, payload: dict) -> None:
    """Default delivery backend: write the notification to the log."""
    logger.info(f"[Notify] requester={requester_id} event={event_kind} payload={payload}")


class Notifier:
    """
    Flask extension wrapping the outbound notification collaborator.

    Usage:
        notifier = Notifier()
        notifier.init_app(app, backend=send_email)
    """

    def __init__(self, app=None, backend: Optional[Callable] = None):
        self.backend = backend or log_backend
        if app is not None:
            self.init_app(app, backend)

    def init_app(self, app, backend: Optional[Callable] = None):
        """Register on the app and install the delivery backend (default: log only)."""
        self.backend = backend or log_backend
        app.extensions['notifier'] = self

    def notify(self, requester_id: int, event_kind: str, payload: dict) -> bool:
        """
        Deliver one notification. Fire-and-forget: failures are logged.

        Returns:
            bool: True if the backend accepted the notification
        """
        try:
            self.backend(requester_id, event_kind, payload)
            return True
        except Exception as e:
            logger.error(
                f"Notification {event_kind} to requester {requester_id} failed: {e}",
                exc_info=True
            )
            return False


# =============================================================================
# POST-COMMIT QUEUE
# =============================================================================

def queue_notification(requester_id: int, event_kind: str, payload: dict) -> None:
    """Queue a notification to be sent after the enclosing transaction commits."""
    if 'pending_notifications' not in g:
        g.pending_notifications = []
    g.pending_notifications.append((requester_id, event_kind, payload))


def discard_notifications() -> int:
    """Drop queued notifications (called on rollback)."""
    pending = g.pop('pending_notifications', None) or []
    if pending:
        logger.debug(f"Discarded {len(pending)} queued notification(s) after rollback")
    return len(pending)


def flush_notifications() -> int:
    """
    Send every queued notification through the notifier extension.

    Returns:
        int: Number of notifications delivered successfully
    """
    from extensions import notifier

    pending = g.pop('pending_notifications', None) or []
    delivered = 0
    for requester_id, event_kind, payload in pending:
        if notifier.notify(requester_id, event_kind, payload):
            delivered += 1
    return delivered
