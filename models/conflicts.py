"""
Conflict queries.

Which reservations overlap a court interval and how strongly they block it.
Callers hold the court lock and an open transaction, so the answer stays
valid until they write.
"""

from typing import List, Optional

from models.reservation import CONFIRMED_SQL, PROVISIONAL_SQL

_OVERLAP_SQL = 'r.court_id = ? AND r.start_at < ? AND ? < r.end_at'


def _overlap_params(interval):
    return [interval.court_id, interval.end_str, interval.start_str]


def find_blocking(cursor, interval, exclude_group_id: int = None, exclude_ids=()) -> Optional[dict]:
    """First Confirmed reservation overlapping the interval (court taken from it), or None."""
    query = f'SELECT r.* FROM reservations r WHERE {_OVERLAP_SQL} AND {CONFIRMED_SQL}'
    params = _overlap_params(interval)
    if exclude_ids:
        query += f" AND r.id NOT IN ({','.join('?' * len(exclude_ids))})"
        params.extend(exclude_ids)
    if exclude_group_id is not None:
        query += ' AND (r.group_id IS NULL OR r.group_id != ?)'
        params.append(exclude_group_id)
    query += ' ORDER BY r.created_at, r.id LIMIT 1'
    cursor.execute(query, params)
    row = cursor.fetchone()
    return dict(row) if row else None


def find_provisional_conflicts(cursor, interval, exclude_group_id: int = None, exclude_ids=()) -> List[dict]:
    """
    Provisional reservations overlapping the interval, oldest first.

    Args:
        cursor: Active transaction cursor
        interval: Court interval to test
        exclude_ids: Reservation IDs to ignore
        exclude_group_id: Ignore line items of this group

    Returns:
        list: Reservation dicts ordered by (created_at, id)
    """
    query = f'SELECT r.* FROM reservations r WHERE {_OVERLAP_SQL} AND {PROVISIONAL_SQL}'
    params = _overlap_params(interval)
    if exclude_ids:
        query += f" AND r.id NOT IN ({','.join('?' * len(exclude_ids))})"
        params.extend(exclude_ids)
    if exclude_group_id is not None:
        query += ' AND (r.group_id IS NULL OR r.group_id != ?)'
        params.append(exclude_group_id)
    query += ' ORDER BY r.created_at, r.id'
    cursor.execute(query, params)
    return [dict(row) for row in cursor.fetchall()]


def find_confirmed_overlaps(cursor) -> List[dict]:
    """
    Pairs of Confirmed reservations that overlap on the same court.

    Returns:
        list: Dicts with first_id, second_id, court_id
    """
    confirmed_a = CONFIRMED_SQL
    confirmed_b = CONFIRMED_SQL.replace('r.', 'o.')
    cursor.execute(f'''
        SELECT r.id AS first_id, o.id AS second_id, r.court_id
        FROM reservations r
        JOIN reservations o
          ON o.court_id = r.court_id
         AND o.id > r.id
         AND r.start_at < o.end_at
         AND o.start_at < r.end_at
        WHERE {confirmed_a} AND {confirmed_b}
        ORDER BY r.id, o.id
    ''')
    return [dict(row) for row in cursor.fetchall()]
