"""Notifications blueprint — /notifications/*

In-app notification inbox for the logged-in user.

Routes:
- GET  /notifications                 — latest notifications (?limit=1..50)
- GET  /notifications/unread-count    — badge count
- POST /notifications/mark-all-read   — mark everything read
- POST /notifications/mark-read       — mark one notification read
- GET  /notifications/preferences     — per-kind email and in-app opt-outs
- PATCH /notifications/preferences    — update some of them
"""

from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from dogshift.extensions import db
from dogshift.models.notification import Notification, NotificationKind
from dogshift.services import notification_prefs

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")

DEFAULT_LIMIT = 20
MAX_LIMIT = 50


def _limit_arg():
    limit = request.args.get("limit", DEFAULT_LIMIT, type=int)
    return max(1, min(limit, MAX_LIMIT))


@notifications_bp.route("", methods=["GET"])
@login_required
def list_notifications():
    """Newest first."""
    items = (
        Notification.query
        .filter_by(user_id=current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(_limit_arg())
        .all()
    )
    return jsonify({"ok": True, "notifications": [n.to_dict() for n in items]})


@notifications_bp.route("/unread-count", methods=["GET"])
@login_required
def unread_count():
    count = (
        Notification.query
        .filter_by(user_id=current_user.id, read_at=None)
        .count()
    )
    return jsonify({"ok": True, "count": count})


@notifications_bp.route("/mark-all-read", methods=["POST"])
@login_required
def mark_all_read():
    result = db.session.execute(
        db.update(Notification)
        .where(Notification.user_id == current_user.id)
        .where(Notification.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return jsonify({"ok": True, "updated": result.rowcount or 0})


@notifications_bp.route("/mark-read", methods=["POST"])
@login_required
def mark_read():
    """Mark one of the user's notifications read. Body: {"id": "<notification id>"}."""
    data = request.get_json(silent=True) or {}
    notification_id = data.get("id") if isinstance(data, dict) else None
    if not isinstance(notification_id, str) or not notification_id.strip():
        return jsonify({"ok": False, "error": "INVALID_ID"}), 400

    result = db.session.execute(
        db.update(Notification)
        .where(Notification.id == notification_id.strip())
        .where(Notification.user_id == current_user.id)
        .where(Notification.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return jsonify({"ok": True, "updated": result.rowcount or 0})


# ──────────────────────────────────────────────
# Preferences
# ──────────────────────────────────────────────

@notifications_bp.route("/preferences", methods=["GET"])
@login_required
def get_preferences():
    return jsonify({
        "ok": True,
        "preferences": notification_prefs.all_preferences(current_user.id),
    })


@notifications_bp.route("/preferences", methods=["PATCH"])
@login_required
def update_preferences():
    """Body: {"<kind>": true|false, ...}. Kinds left out are unchanged."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({"ok": False, "error": "INVALID_PREFERENCES"}), 400
    for kind, enabled in data.items():
        if kind not in NotificationKind.ALL or not isinstance(enabled, bool):
            return jsonify({"ok": False, "error": "INVALID_PREFERENCES"}), 400

    for kind, enabled in data.items():
        notification_prefs.set_preference(current_user.id, kind, enabled)
    db.session.commit()

    return jsonify({
        "ok": True,
        "preferences": notification_prefs.all_preferences(current_user.id),
    })
