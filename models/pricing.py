"""
Price oracle.

Pricing rules are an external collaborator; the engine only asks
`price(court_id, interval)` when it creates a reservation and stores the
quoted amount. The default quote is the court's hourly rate times the
interval length. Deployments replace it through init_app.
"""

import logging
from typing import Callable, Optional

from database import get_db

logger = logging.getLogger(__name__)


def hourly_rate_quote(court_id: int, interval) -> float:
    """
    Default quote: courts.hourly_rate x hours booked.

    Args:
        court_id: Court ID
        interval: Interval being booked

    Returns:
        float: Amount, 0.0 for an unknown court
    """
    db = get_db()
    cursor = db.cursor()
    cursor.execute('SELECT hourly_rate FROM courts WHERE id = ?', (court_id,))
    row = cursor.fetchone()
    if not row:
        return 0.0
    hours = interval.duration.total_seconds() / 3600
    return float(row['hourly_rate'] or 0) * hours


class PriceOracle:
    """
    Flask extension wrapping the pricing collaborator.

    Usage:
        price_oracle = PriceOracle()
        price_oracle.init_app(app, quote=my_quote_function)
    """

    def __init__(self, app=None, quote: Optional[Callable] = None):
        self.quote = quote or hourly_rate_quote
        if app is not None:
            self.init_app(app, quote)

    def init_app(self, app, quote: Optional[Callable] = None):
        """Register on the app and install the quote function (default: hourly rate)."""
        self.quote = quote or hourly_rate_quote
        app.extensions['price_oracle'] = self

    def price(self, court_id: int, interval) -> float:
        """Quote a court interval, rounded to cents."""
        amount = self.quote(court_id, interval)
        return round(float(amount), 2)
