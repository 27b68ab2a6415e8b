"""
Database schema definitions.
Table creation, indexes, and structure management.
"""


def drop_tables(db):
    """Drop all existing tables."""
    # Disable foreign key constraints before dropping
    db.execute('PRAGMA foreign_keys = OFF')

    tables = [
        'sweeper_lease',
        'operators',
        'status_history',
        'audit_log',
        'app_config',
        'waitlist_entries',
        'reservations',
        'reservation_groups',
        'holidays',
        'business_hours',
        'courts',
    ]

    for table in tables:
        db.execute(f'DROP TABLE IF EXISTS {table}')

    # Re-enable foreign key constraints
    db.execute('PRAGMA foreign_keys = ON')


def create_tables(db):
    """Create all database tables."""

    # 1. Resources
    db.execute('''
        CREATE TABLE courts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            hourly_rate REAL NOT NULL DEFAULT 0,
            active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # 2. Business calendar
    db.execute('''
        CREATE TABLE business_hours (
            weekday INTEGER PRIMARY KEY CHECK(weekday BETWEEN 0 AND 6),
            open_time TEXT NOT NULL DEFAULT '08:00',
            close_time TEXT NOT NULL DEFAULT '17:00',
            is_operational INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    db.execute('''
        CREATE TABLE holidays (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            holiday_date TEXT NOT NULL,
            name TEXT NOT NULL,
            is_recurring INTEGER NOT NULL DEFAULT 0,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # 3. Reservation groups (one checkout)
    # group_id / blocking_reservation_id below carry no FOREIGN KEY: legacy rows
    # may dangle and the reconciler reports them instead of the insert failing.
    db.execute('''
        CREATE TABLE reservation_groups (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            requester_id INTEGER NOT NULL,
            approval_state TEXT NOT NULL DEFAULT 'pending_approval'
                CHECK(approval_state IN ('pending_approval', 'approved', 'rejected')),
            payment_state TEXT NOT NULL DEFAULT 'unpaid'
                CHECK(payment_state IN ('unpaid', 'paid')),
            no_expiry INTEGER NOT NULL DEFAULT 0,
            payment_proof_ref TEXT,
            rejection_reason TEXT,
            approved_at TEXT,
            paid_at TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # 4. Reservations (line items)
    db.execute('''
        CREATE TABLE reservations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            requester_id INTEGER NOT NULL,
            court_id INTEGER NOT NULL REFERENCES courts(id),
            start_at TEXT NOT NULL,
            end_at TEXT NOT NULL,
            group_id INTEGER,
            approval_state TEXT NOT NULL DEFAULT 'pending_approval'
                CHECK(approval_state IN ('pending_approval', 'approved', 'rejected')),
            payment_state TEXT NOT NULL DEFAULT 'unpaid'
                CHECK(payment_state IN ('unpaid', 'paid')),
            lifecycle_state TEXT NOT NULL DEFAULT 'active'
                CHECK(lifecycle_state IN ('active', 'checked_in', 'completed', 'cancelled', 'expired')),
            payment_deadline TEXT,
            origin_waitlist_entry_id INTEGER,
            price REAL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            CHECK(end_at > start_at)
        )
    ''')

    # 5. Waitlist
    db.execute('''
        CREATE TABLE waitlist_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            requester_id INTEGER NOT NULL,
            court_id INTEGER NOT NULL REFERENCES courts(id),
            start_at TEXT NOT NULL,
            end_at TEXT NOT NULL,
            blocking_reservation_id INTEGER,
            position INTEGER NOT NULL,
            state TEXT NOT NULL DEFAULT 'pending'
                CHECK(state IN ('pending', 'notified', 'converted', 'expired', 'cancelled')),
            notified_at TEXT,
            payment_deadline TEXT,
            promoted_reservation_id INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(court_id, start_at, end_at, position),
            CHECK(end_at > start_at)
        )
    ''')

    # 6. Configuration, history and audit
    db.execute('''
        CREATE TABLE app_config (
            key TEXT PRIMARY KEY,
            value TEXT,
            description TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    db.execute('''
        CREATE TABLE status_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entity_type TEXT NOT NULL,
            entity_id INTEGER NOT NULL,
            field TEXT NOT NULL,
            old_value TEXT,
            new_value TEXT,
            changed_by TEXT,
            reason TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    db.execute('''
        CREATE TABLE audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            actor TEXT,
            action TEXT NOT NULL,
            entity_type TEXT,
            entity_id INTEGER,
            changes TEXT,
            ip_address TEXT,
            user_agent TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # 7. Operators (API credentials for back-office actions)
    db.execute('''
        CREATE TABLE operators (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            token_hash TEXT NOT NULL,
            full_name TEXT,
            active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            last_seen TEXT
        )
    ''')

    db.execute('''
        CREATE TABLE sweeper_lease (
            name TEXT PRIMARY KEY,
            holder TEXT,
            expires_at TEXT
        )
    ''')


def create_indexes(db):
    """Create performance indexes."""

    # Reservation indexes
    db.execute('CREATE INDEX idx_reservations_court_time ON reservations(court_id, start_at, end_at)')
    db.execute('CREATE INDEX idx_reservations_group ON reservations(group_id)')
    db.execute('CREATE INDEX idx_reservations_deadline ON reservations(lifecycle_state, payment_state, payment_deadline)')

    # Waitlist indexes
    db.execute('CREATE INDEX idx_waitlist_slot ON waitlist_entries(court_id, start_at, end_at, state)')
    db.execute('CREATE INDEX idx_waitlist_blocking ON waitlist_entries(blocking_reservation_id, state)')

    # Calendar indexes
    db.execute('CREATE INDEX idx_holidays_date ON holidays(holiday_date)')

    # History / audit indexes
    db.execute('CREATE INDEX idx_status_history_entity ON status_history(entity_type, entity_id)')
    db.execute('CREATE INDEX idx_audit_log_entity ON audit_log(entity_type, entity_id)')
