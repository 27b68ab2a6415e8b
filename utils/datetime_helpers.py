"""Timezone-aware date/time helpers for the court booking engine.

Instants are persisted as naive wall-clock strings in the configured
timezone, always with the full date, so string comparison in SQL orders
them correctly across midnight.
"""

from datetime import datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from flask import current_app

INSTANT_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_timezone() -> ZoneInfo:
    """Get the configured timezone."""
    tz_name = current_app.config.get('TIMEZONE', 'Asia/Manila')
    return ZoneInfo(tz_name)


def get_now() -> datetime:
    """Get current datetime in the configured timezone."""
    return datetime.now(get_timezone())


def get_local_now() -> datetime:
    """Current wall-clock instant without tzinfo, as stored in the database."""
    return get_now().replace(tzinfo=None, microsecond=0)


def to_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local wall-clock; naive values pass through."""
    if value.tzinfo is not None:
        value = value.astimezone(get_timezone()).replace(tzinfo=None)
    return value.replace(microsecond=0)


def format_instant(value: Optional[datetime]) -> Optional[str]:
    """Format an instant for storage. None stays None."""
    if value is None:
        return None
    return to_local(value).strftime(INSTANT_FORMAT)


def parse_instant(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a stored or user-supplied instant.

    Accepts 'YYYY-MM-DD HH:MM[:SS]' and ISO 8601 ('T' separator, optional
    offset). Aware values are converted to local wall-clock.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    return to_local(parsed)
