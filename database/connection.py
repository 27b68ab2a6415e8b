"""
Database connection management.
Handles per-context connections, explicit transactions, initialization, and teardown.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager

from flask import g, current_app

from utils.exceptions import BusyError

logger = logging.getLogger(__name__)


def get_db():
    """
    Get thread-safe database connection with row factory.

    One connection per application context; the busy timeout matches the
    court lock timeout so a writer in another process is waited on for the
    same bounded time.

    Returns:
        sqlite3.Connection: Database connection object
    """
    if 'db' not in g:
        db_path = current_app.config.get('DATABASE_PATH', 'instance/courtbook.db')
        if db_path != ':memory:':
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
        g.db = sqlite3.connect(
            db_path,
            timeout=float(current_app.config.get('LOCK_TIMEOUT_SECONDS', 5)),
            detect_types=sqlite3.PARSE_DECLTYPES
        )
        g.db.row_factory = sqlite3.Row
        # Enable foreign key constraints
        g.db.execute('PRAGMA foreign_keys = ON')
        # Enable WAL mode for better concurrency
        g.db.execute('PRAGMA journal_mode = WAL')
    return g.db


def close_db(e=None):
    """
    Close database connection.

    Args:
        e: Exception if any (from Flask teardown context)
    """
    db = g.pop('db', None)
    if db is not None:
        db.close()


def _is_busy_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return 'locked' in message or 'busy' in message


@contextmanager
def transaction():
    """
    Run a block as one atomic, serializable unit.

    Opens `BEGIN IMMEDIATE` (takes the database write lock up front, so a
    read-check-then-write inside the block cannot interleave with another
    writer), commits on success and rolls back on any exception. Queued
    notifications are sent only after COMMIT and dropped on ROLLBACK.

    Usage:
        with transaction() as db:
            cursor = db.cursor()
            ...

    Raises:
        BusyError: If the write lock is not obtained within the busy timeout
    """
    from utils.notifications import flush_notifications, discard_notifications

    db = get_db()
    if db.in_transaction:
        # Leftover implicit transaction from a legacy write path
        db.commit()

    try:
        db.execute('BEGIN IMMEDIATE')
    except sqlite3.OperationalError as e:
        if _is_busy_error(e):
            logger.warning(f"Database write lock not available: {e}")
            raise BusyError('Database is busy, retry later') from e
        raise

    try:
        yield db
    except Exception:
        db.rollback()
        discard_notifications()
        raise

    try:
        db.commit()
    except sqlite3.OperationalError as e:
        db.rollback()
        discard_notifications()
        if _is_busy_error(e):
            raise BusyError('Database is busy, retry later') from e
        raise

    flush_notifications()


def init_db():
    """
    Initialize database: drop existing tables, create new schema, insert seed data.
    WARNING: This will delete all existing data!
    """
    from database.schema import drop_tables, create_tables, create_indexes
    from database.seed import seed_database

    db = get_db()

    # Drop existing tables (in reverse order of dependencies)
    drop_tables(db)

    # Create all tables
    create_tables(db)

    # Create indexes
    create_indexes(db)

    # Insert seed data
    seed_database(db)

    db.commit()
    logger.info("Database initialized successfully")
