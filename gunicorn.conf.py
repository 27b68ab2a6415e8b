"""Gunicorn settings for the CourtBook API."""

import os

bind = os.environ.get('COURTBOOK_BIND', '0.0.0.0:8000')

# Court locks live in each worker; cross-worker ordering comes from
# SQLite's single writer, so a few threaded workers are enough.
workers = int(os.environ.get('COURTBOOK_WORKERS', 2))
threads = 4
worker_class = 'gthread'

# Requests may wait up to LOCK_TIMEOUT_SECONDS for a court
timeout = 60
graceful_timeout = 30
keepalive = 5

accesslog = os.environ.get('COURTBOOK_ACCESS_LOG', 'logs/gunicorn-access.log')
errorlog = os.environ.get('COURTBOOK_ERROR_LOG', 'logs/gunicorn-error.log')
loglevel = 'info'

proc_name = 'courtbook'
preload_app = True

max_requests = 1000
max_requests_jitter = 50
