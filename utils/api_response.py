"""
JSON envelope shared by every /api route and error handler.

    {"success": true,  "data": ..., "message": "...", <extra>}
    {"success": false, "error": "...", <extra>}

`status` is always the HTTP status code, never a payload field; put domain
states (outcome, already_terminal, ...) in data or in extra fields.
"""

from typing import Any

from flask import jsonify


def api_success(data: Any = None, message: str | None = None, status: int = 200,
                **extra_fields: Any) -> tuple:
    """Success envelope. Extra keyword fields are merged at the top level."""
    body = {'success': True}
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    body.update(extra_fields)
    return jsonify(body), status


def api_error(error: str, status: int = 400, **extra_fields: Any) -> tuple:
    """Error envelope, e.g. api_error('Court is busy', status=503, retry=True)."""
    body = {'success': False, 'error': error}
    body.update(extra_fields)
    return jsonify(body), status
