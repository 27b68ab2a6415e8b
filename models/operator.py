"""
Operator model and data access functions.
Back-office accounts that approve, reject and record payments through the
API. Authentication is a bearer token checked by Flask-Login's request loader.
"""

import secrets

from werkzeug.security import generate_password_hash, check_password_hash

from database import get_db, transaction
from utils.exceptions import ValidationError


class Operator:
    """
    Operator class for Flask-Login integration.
    Wraps database row dictionary with required Flask-Login properties.
    """

    def __init__(self, operator_dict):
        self.id = operator_dict['id']
        self.username = operator_dict['username']
        self.full_name = operator_dict.get('full_name')
        self.active = operator_dict['active']

    @property
    def is_authenticated(self):
        """Required by Flask-Login."""
        return True

    @property
    def is_active(self):
        """Required by Flask-Login."""
        return self.active == 1

    @property
    def is_anonymous(self):
        """Required by Flask-Login."""
        return False

    def get_id(self):
        """Required by Flask-Login. Returns operator ID as string."""
        return str(self.id)


def get_operator_by_id(operator_id: int) -> dict:
    """Get operator by ID."""
    cursor = get_db().cursor()
    cursor.execute('SELECT * FROM operators WHERE id = ?', (operator_id,))
    row = cursor.fetchone()
    return dict(row) if row else None


def get_operator_by_username(username: str) -> dict:
    """
    Get operator by username.

    Args:
        username: Username to search for

    Returns:
        Operator dict or None if not found
    """
    cursor = get_db().cursor()
    cursor.execute('SELECT * FROM operators WHERE username = ?', (username,))
    row = cursor.fetchone()
    return dict(row) if row else None


def create_operator(username: str, full_name: str = None, token: str = None) -> tuple:
    """
    Create an operator and issue its API token.

    The token is only returned here; the database keeps its hash.

    Args:
        username: Unique username
        full_name: Display name
        token: Token to use (default: randomly generated)

    Returns:
        tuple: (operator_id, token)
    """
    if not username:
        raise ValidationError("Username is required")
    if get_operator_by_username(username):
        raise ValidationError(f"Operator '{username}' already exists")

    token = token or secrets.token_urlsafe(32)
    db = get_db()
    cursor = db.cursor()
    cursor.execute('''
        INSERT INTO operators (username, token_hash, full_name)
        VALUES (?, ?, ?)
    ''', (username, generate_password_hash(token), full_name))
    db.commit()
    return cursor.lastrowid, token


def authenticate_token(header_value: str):
    """
    Resolve an 'Authorization: Bearer <username>:<token>' header.

    Returns:
        Operator or None

    Raises:
        BusyError: If the last_seen update cannot get the write lock in time
    """
    if not header_value or not header_value.startswith('Bearer '):
        return None
    credentials = header_value[len('Bearer '):].strip()
    username, sep, token = credentials.partition(':')
    if not sep or not username or not token:
        return None

    operator = get_operator_by_username(username)
    if not operator or not operator['active']:
        return None
    if not check_password_hash(operator['token_hash'], token):
        return None

    with transaction() as db:
        db.execute('UPDATE operators SET last_seen = CURRENT_TIMESTAMP WHERE id = ?', (operator['id'],))
    return Operator(operator)
