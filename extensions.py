"""
Flask extensions initialization.
Extensions are initialized here and then initialized with the app in app.py.
"""

from flask import jsonify
from flask_login import LoginManager

from models.pricing import PriceOracle
from utils.notifications import Notifier

# Initialize Flask-Login (operators authenticate with a bearer token)
login_manager = LoginManager()

# Outbound collaborators
notifier = Notifier()
price_oracle = PriceOracle()


@login_manager.request_loader
def load_operator_from_request(request):
    """
    Load operator from the Authorization header.

    Args:
        request: Current request

    Returns:
        Operator object or None
    """
    from models.operator import authenticate_token

    return authenticate_token(request.headers.get('Authorization'))


@login_manager.user_loader
def load_operator(operator_id):
    """Load operator by ID for Flask-Login sessions."""
    from models.operator import get_operator_by_id, Operator

    operator_dict = get_operator_by_id(int(operator_id))
    if operator_dict:
        return Operator(operator_dict)
    return None


@login_manager.unauthorized_handler
def unauthorized():
    """JSON 401 instead of a login redirect."""
    return jsonify({'success': False, 'error': 'Authentication required'}), 401
