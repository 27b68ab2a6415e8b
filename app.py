"""
CourtBook - Court Reservation Engine
Flask application factory and initialization
"""

import os
import time
import click
import logging
from flask import Flask, g
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Import configuration
from config import config

# Import extensions
from extensions import login_manager, notifier, price_oracle

# Import database functions
from database import close_db, init_db

from utils.api_response import api_error
from utils.exceptions import BusyError, ValidationError


def create_app(config_name=None):
    """
    Application factory for Flask app.

    Args:
        config_name: Configuration name ('development', 'production', 'test')

    Returns:
        Flask application instance
    """
    # Determine config
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    # Create Flask app
    app = Flask(__name__)

    # Load configuration
    config_class = config[config_name]
    if config_name == 'production':
        config_class.validate()
    app.config.from_object(config_class)

    # Initialize extensions
    initialize_extensions(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_cli_commands(app)

    # Register teardown handlers
    register_teardown_handlers(app)

    # Configure logging
    configure_logging(app)

    return app


def initialize_extensions(app):
    """Initialize Flask extensions."""
    # Operator authentication (bearer tokens)
    login_manager.init_app(app)
    # Outbound notifications and price quotes
    notifier.init_app(app)
    price_oracle.init_app(app)


def register_blueprints(app):
    """Register Flask blueprints."""
    from blueprints.api import api_bp

    app.register_blueprint(api_bp, url_prefix='/api')


def register_error_handlers(app):
    """Register error handlers."""

    @app.errorhandler(ValidationError)
    def validation_error(error):
        """Malformed input or invalid transition."""
        return api_error(str(error), status=400)

    @app.errorhandler(BusyError)
    def busy_error(error):
        """Lock contention; the client should retry."""
        app.logger.warning(f"Busy: {error}")
        return api_error(str(error), status=503, retry=True)

    @app.errorhandler(404)
    def not_found_error(error):
        """Handle 404 errors."""
        return api_error('Not found', status=404)

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return api_error('Method not allowed', status=405)

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        # Rollback database on error
        db = g.get('db')
        if db is not None and db.in_transaction:
            db.rollback()
        return api_error('Internal server error', status=500)


def register_cli_commands(app):
    """Register Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db_command():
        """Initialize database with schema and seed data."""
        click.echo('Initializing database...')
        with app.app_context():
            init_db()
        click.echo('Database initialized successfully!')

    @app.cli.command('create-operator')
    @click.argument('username')
    @click.option('--full-name', default=None, help='Display name')
    def create_operator_command(username, full_name):
        """Create an operator and print its API token."""
        from models.operator import create_operator

        with app.app_context():
            try:
                operator_id, token = create_operator(username=username, full_name=full_name)
            except ValidationError as e:
                raise click.ClickException(str(e))
        click.echo(f'Operator created successfully! ID: {operator_id}')
        click.echo(f'Token (shown once): {token}')

    @app.cli.command('set-hours')
    @click.argument('weekday', type=click.IntRange(0, 6))
    @click.argument('open_time', required=False, default='08:00')
    @click.argument('close_time', required=False, default='17:00')
    @click.option('--closed', is_flag=True, help='Mark the weekday as not operational')
    def set_hours_command(weekday, open_time, close_time, closed):
        """Set the operating window of a weekday (0 = Monday .. 6 = Sunday)."""
        from models.calendar import set_business_hours

        with app.app_context():
            try:
                set_business_hours(weekday, open_time, close_time, is_operational=not closed)
            except ValueError as e:
                raise click.ClickException(str(e))
        if closed:
            click.echo(f'Weekday {weekday} closed.')
        else:
            click.echo(f'Weekday {weekday} open {open_time}-{close_time}.')

    @app.cli.command('add-holiday')
    @click.argument('holiday_date')
    @click.argument('name')
    @click.option('--recurring', is_flag=True, help='Repeat on the same day every year')
    def add_holiday_command(holiday_date, name, recurring):
        """Add a holiday (YYYY-MM-DD) on which no court operates."""
        from models.calendar import add_holiday

        with app.app_context():
            try:
                holiday_id = add_holiday(holiday_date, name, is_recurring=recurring)
            except ValueError as e:
                raise click.ClickException(str(e))
        click.echo(f'Holiday added. ID: {holiday_id}')

    @app.cli.command('sweep')
    @click.option('--now', default=None, help="Override the current instant ('YYYY-MM-DD HH:MM:SS')")
    def sweep_command(now):
        """Run one expiration sweep."""
        from models.expiration import run_expiration_sweep

        with app.app_context():
            summary = run_expiration_sweep(now=now)
        click.echo(
            f"Expired: {summary['expired_count']}, promoted: {summary['promoted_count']}, "
            f"waitlist closed: {summary['cancelled_waitlist_count']}"
        )
        if summary.get('skipped'):
            click.echo('Another sweeper holds the lease; nothing done.')

    @app.cli.command('run-sweeper')
    @click.option('--interval', type=int, default=None, help='Seconds between passes')
    def run_sweeper_command(interval):
        """Run the expiration sweeper in a loop until interrupted."""
        from models.expiration import run_expiration_sweep

        interval = interval or app.config['SWEEP_INTERVAL_SECONDS']
        click.echo(f'Sweeper running every {interval}s (Ctrl+C to stop)')
        try:
            while True:
                with app.app_context():
                    try:
                        summary = run_expiration_sweep()
                        if summary['expired_count'] or summary['promoted_count']:
                            app.logger.info(f"Sweep: {summary}")
                    except BusyError as e:
                        app.logger.warning(f"Sweep skipped, database busy: {e}")
                time.sleep(interval)
        except KeyboardInterrupt:
            click.echo('Sweeper stopped.')

    @app.cli.command('reconcile')
    @click.option('--dry-run', is_flag=True, help='Report violations without repairing')
    def reconcile_command(dry_run):
        """Detect and repair state drift."""
        from models.reconciliation import run_reconciliation

        with app.app_context():
            summary = run_reconciliation(dry_run=dry_run)

        for violation in summary['violations']:
            click.echo(f"  {violation['kind']}: {violation['entity_type']} #{violation['entity_id']}")
        if dry_run:
            click.echo(f"Repairable: {summary['repairable_count']}, flagged: {summary['flagged_count']} (dry run)")
        else:
            click.echo(f"Repaired: {summary['repaired_count']}, flagged: {summary['flagged_count']}")


def register_teardown_handlers(app):
    """Register teardown handlers."""

    @app.teardown_appcontext
    def teardown_db(error):
        """Close database connection at end of request."""
        close_db(error)


def configure_logging(app):
    """Configure application logging."""
    if not app.debug and not app.testing:
        # Production logging
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = logging.FileHandler('logs/courtbook.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        logging.getLogger().addHandler(file_handler)
        logging.getLogger().setLevel(logging.INFO)

        app.logger.setLevel(logging.INFO)
        app.logger.info('CourtBook startup')
    else:
        # Development logging
        app.logger.setLevel(logging.DEBUG)


# Create application instance for development server
if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', debug=True)
