"""WSGI entry point for production deployment.

The expiration sweeper is not started here; run `flask run-sweeper`
as its own process (or `flask sweep` from cron).
"""
import os
from app import create_app

application = create_app(os.environ.get('FLASK_ENV', 'production'))
