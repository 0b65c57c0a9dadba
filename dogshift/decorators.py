"""
Custom route decorators for access control.

- sitter_required: ensures user is logged in AND has a sitter profile.
  The profile is exposed as g.sitter_profile.
"""

from functools import wraps

from flask import g, jsonify
from flask_login import current_user, login_required


def sitter_required(f):
    """Require login + a sitter profile."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        profile = current_user.sitter_profile
        if profile is None:
            return jsonify({"ok": False, "error": "FORBIDDEN"}), 403

        g.sitter_profile = profile
        return f(*args, **kwargs)

    return decorated
