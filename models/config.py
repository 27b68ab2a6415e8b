"""
Runtime business settings stored in the app_config table.

Keys seeded by database/seed.py:
    waitlist_enabled    queue contenders for a pending slot ('true') or reject them
    promotion_policy    'broadcast' (every queued requester is offered the slot,
                        first to pay wins) or 'position' (lowest position only)
"""

from typing import Optional
from database import get_db

PROMOTION_BROADCAST = 'broadcast'
PROMOTION_POSITION = 'position'
PROMOTION_POLICIES = (PROMOTION_BROADCAST, PROMOTION_POSITION)

TRUTHY = ('true', '1', 'yes', 'on')


def get_config(key: str, default: str = None) -> Optional[str]:
    """
    Read one setting.

    Args:
        key: Setting name
        default: Returned when the key is absent

    Returns:
        Stored string value or default
    """
    row = get_db().execute('SELECT value FROM app_config WHERE key = ?', (key,)).fetchone()
    return row['value'] if row else default


def get_config_bool(key: str, default: bool = False) -> bool:
    value = get_config(key)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def is_waitlist_enabled() -> bool:
    """Whether contenders for a pending slot are queued (True) or rejected."""
    return get_config_bool('waitlist_enabled', True)


def get_promotion_policy() -> str:
    """Active waitlist promotion policy; unknown values fall back to broadcast."""
    policy = (get_config('promotion_policy', PROMOTION_BROADCAST) or '').strip().lower()
    return policy if policy in PROMOTION_POLICIES else PROMOTION_BROADCAST


def set_config(key: str, value: str, description: str = None) -> None:
    """
    Insert or overwrite a setting.

    The description is kept from the first insert when omitted.
    """
    db = get_db()
    db.execute('''
        INSERT INTO app_config (key, value, description)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            description = COALESCE(excluded.description, app_config.description),
            updated_at = CURRENT_TIMESTAMP
    ''', (key, value, description))
    db.commit()
