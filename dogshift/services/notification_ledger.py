"""Idempotency ledger for notification side effects.

A row in notification_send_logs for (user_id, kind, entity_id) means the
notification was delivered and must never be sent again. mark_sent() is an
insert-if-absent: when two webhook deliveries race, the loser sees a
uniqueness conflict and gets False back instead of an error.

Callers own the commit boundary.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from dogshift.extensions import db
from dogshift.models.notification import NotificationSendLog

logger = logging.getLogger(__name__)

_CONFLICT_COLUMNS = ["user_id", "kind", "entity_id"]


def has_sent(user_id, kind, entity_id):
    """True if this (user, kind, entity) triple was already notified."""
    return NotificationSendLog.query.filter_by(
        user_id=user_id, kind=kind, entity_id=entity_id
    ).first() is not None


def insert_ignoring_conflict(model, values, conflict_columns):
    """INSERT a row unless it collides with a unique key.

    values are keyed by column name. Returns True if a row was inserted,
    False on conflict. Shared with the in-app notification sink.
    """
    table = model.__table__
    dialect = db.session.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
        )
        result = db.session.execute(stmt)
        return (result.rowcount or 0) > 0

    # Fallback: try the insert inside a savepoint and treat a unique
    # violation as "already there".
    try:
        with db.session.begin_nested():
            db.session.execute(db.insert(table).values(**values))
        return True
    except IntegrityError:
        return False


def mark_sent(user_id, kind, entity_id, at=None):
    """Record that (user, kind, entity) was notified.

    Returns True if this call wrote the row, False if it already existed.
    """
    inserted = insert_ignoring_conflict(
        NotificationSendLog,
        {
            "user_id": user_id,
            "kind": kind,
            "entity_id": entity_id,
            "sent_at": at or datetime.now(timezone.utc),
        },
        _CONFLICT_COLUMNS,
    )
    if not inserted:
        logger.info(
            f"Ledger row already present for {kind}/{entity_id} -> {user_id}"
        )
    return inserted
