"""
Maintenance API routes.
Health check plus on-demand sweeper and reconciler runs for operators.
"""

import logging

from flask import current_app, request
from flask_login import login_required

from models.expiration import run_expiration_sweep
from models.reconciliation import run_reconciliation
from utils.api_response import api_success
from utils.audit import log_audit

logger = logging.getLogger(__name__)


def register_routes(bp):
    """Register maintenance routes on the blueprint."""

    @bp.route('/health')
    def health_check():
        """
        Health check endpoint (no authentication required).

        Returns:
            JSON with status and version
        """
        return api_success(data={
            'status': 'ok',
            'version': current_app.config.get('APP_VERSION', '1.0.0'),
            'app': current_app.config.get('APP_NAME', 'CourtBook'),
        })

    @bp.route('/maintenance/sweep', methods=['POST'])
    @login_required
    def trigger_sweep():
        """Run one expiration pass now."""
        summary = run_expiration_sweep()
        log_audit('SWEEP', 'maintenance', after=summary)
        return api_success(data=summary)

    @bp.route('/maintenance/reconcile', methods=['POST'])
    @login_required
    def trigger_reconcile():
        """
        Run the consistency reconciler.

        Request body (JSON):
            dry_run: Detect only (default false)
        """
        data = request.get_json(silent=True) or {}
        summary = run_reconciliation(dry_run=bool(data.get('dry_run', False)))
        log_audit('RECONCILE', 'maintenance',
                  after={k: summary[k] for k in ('repaired_count', 'repairable_count', 'flagged_count')
                         if k in summary})
        return api_success(data=summary)
