"""
Database seed data.
Initial data population for fresh database installations.
"""


def seed_database(db):
    """Insert initial seed data."""

    # 1. Courts
    courts_data = [
        ('Court 1', 400.0),
        ('Court 2', 400.0),
        ('Court 3', 500.0),
    ]

    for name, hourly_rate in courts_data:
        db.execute('''
            INSERT INTO courts (name, hourly_rate)
            VALUES (?, ?)
        ''', (name, hourly_rate))

    # 2. Business hours (weekday 0 = Monday). Sunday closed.
    for weekday in range(7):
        db.execute('''
            INSERT INTO business_hours (weekday, open_time, close_time, is_operational)
            VALUES (?, '08:00', '17:00', ?)
        ''', (weekday, 0 if weekday == 6 else 1))

    # 3. Runtime configuration
    config_data = [
        ('waitlist_enabled', 'true', 'Queue contenders for pending slots instead of rejecting them'),
        ('promotion_policy', 'broadcast',
         'broadcast: notify every pending entry (first to pay wins); position: promote lowest position only'),
    ]

    for key, value, description in config_data:
        db.execute('''
            INSERT INTO app_config (key, value, description)
            VALUES (?, ?, ?)
        ''', (key, value, description))

    # 4. Sweeper lease row
    db.execute("INSERT INTO sweeper_lease (name, holder, expires_at) VALUES ('expiration', NULL, NULL)")
