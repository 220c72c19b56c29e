"""
Custom route decorators for access control (JSON API).

- token_required: ensures a valid bearer token resolved to a user.
- activity_viewer_required: token + role admin or company_admin.
- admin_required: token + role admin.
"""

from functools import wraps

from flask import jsonify
from flask_login import current_user


def _unauthorized():
    return jsonify({"error": "Unauthorized"}), 401


def _forbidden():
    return jsonify({"error": "Forbidden"}), 403


def token_required(f):
    """Require an authenticated user."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return _unauthorized()
        return f(*args, **kwargs)

    return decorated


def activity_viewer_required(f):
    """Require login + permission to view the company's activities."""

    @wraps(f)
    @token_required
    def decorated(*args, **kwargs):
        if not current_user.can_view_activities:
            return _forbidden()
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Require login + the platform admin role."""

    @wraps(f)
    @token_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            return _forbidden()
        return f(*args, **kwargs)

    return decorated
