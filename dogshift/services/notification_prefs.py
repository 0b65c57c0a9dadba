"""Notification preferences.

Looked up from the database on every dispatch. There is deliberately no
in-process cache: a user who turns a notification off must stop getting it
on the very next event.
"""

from dogshift.extensions import db
from dogshift.models.notification import NotificationKind, NotificationPreference


def is_enabled(user_id, kind):
    """Return whether user_id wants notifications of this kind (default on)."""
    pref = NotificationPreference.query.filter_by(
        user_id=user_id, kind=kind
    ).first()
    if pref is None:
        return True
    return bool(pref.enabled)


def set_preference(user_id, kind, enabled):
    """Create or update a preference row. Caller commits."""
    if kind not in NotificationKind.ALL:
        raise ValueError(f"Unknown notification kind: {kind}")

    pref = NotificationPreference.query.filter_by(
        user_id=user_id, kind=kind
    ).first()
    if pref is None:
        pref = NotificationPreference(user_id=user_id, kind=kind)
        db.session.add(pref)
    pref.enabled = bool(enabled)
    return pref


def all_preferences(user_id):
    """Every notification kind mapped to whether user_id has it enabled."""
    stored = {
        pref.kind: bool(pref.enabled)
        for pref in NotificationPreference.query.filter_by(user_id=user_id)
    }
    return {kind: stored.get(kind, True) for kind in sorted(NotificationKind.ALL)}
