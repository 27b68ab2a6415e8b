"""
JSON API package.
Split into smaller modules by entity for maintainability.
"""

from flask import Blueprint

# Create the API blueprint
api_bp = Blueprint('api', __name__)

# Import and register routes from submodules
from blueprints.api import bookings
from blueprints.api import groups
from blueprints.api import waitlist
from blueprints.api import maintenance

# Register all route functions on the blueprint
bookings.register_routes(api_bp)
groups.register_routes(api_bp)
waitlist.register_routes(api_bp)
maintenance.register_routes(api_bp)
