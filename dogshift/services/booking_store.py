"""Booking store — lookups and guarded status writes.

Every status change goes through conditional_update_status(), a single
UPDATE ... WHERE id = :id AND status IN (:allowed) statement. The returned
row count is the only signal callers use to decide whether they actually
transitioned the booking (and so whether to notify). Never replace it with
a read-modify-write.

Callers own the commit boundary.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from dogshift.extensions import db
from dogshift.models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)

# Payment-linkage columns that are only ever filled in, never cleared.
LINKAGE_FIELDS = (
    "stripe_payment_intent_id",
    "stripe_session_id",
    "stripe_transfer_id",
)


@dataclass(frozen=True)
class BookingLookup:
    """What an event tells us about which booking it belongs to."""

    booking_id: Optional[str] = None
    session_id: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @property
    def is_empty(self):
        return not (self.booking_id or self.session_id or self.payment_intent_id)


def find_booking_for_event(criteria):
    """Resolve the booking an event refers to.

    Priority:
      1. metadata booking id (authoritative — no fallback if it misses)
      2. stored checkout session id
      3. stored payment intent id

    Returns the Booking or None.
    """
    if criteria.booking_id:
        return db.session.get(Booking, criteria.booking_id)

    if criteria.session_id:
        booking = Booking.query.filter_by(
            stripe_session_id=criteria.session_id
        ).first()
        if booking:
            return booking

    if criteria.payment_intent_id:
        return Booking.query.filter_by(
            stripe_payment_intent_id=criteria.payment_intent_id
        ).first()

    return None


def _drop_empty(fields):
    return {
        key: value for key, value in fields.items()
        if value is not None and value != ""
    }


def conditional_update_status(booking_id, allowed_current_statuses, new_fields,
                              stored_payment_intent_id=None):
    """Atomically apply new_fields if the booking's status is allowed.

    new_fields must include "status". None/empty values are dropped so a
    missing linkage id never overwrites a stored one. With
    stored_payment_intent_id, the row must also already carry that intent.

    Returns the number of rows changed (0 or 1).
    """
    allowed = set(allowed_current_statuses)
    unknown = allowed - BookingStatus.ALL
    if unknown:
        raise ValueError(f"Unknown booking statuses in guard: {sorted(unknown)}")

    values = _drop_empty(new_fields)
    if values.get("status") not in BookingStatus.ALL:
        raise ValueError(f"Invalid target status: {new_fields.get('status')!r}")

    stmt = (
        db.update(Booking)
        .where(Booking.id == booking_id)
        .where(Booking.status.in_(sorted(allowed)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if stored_payment_intent_id:
        stmt = stmt.where(Booking.stripe_payment_intent_id == stored_payment_intent_id)
    result = db.session.execute(stmt)
    count = result.rowcount or 0

    logger.info(
        f"booking {booking_id}: conditional update -> {values['status']} "
        f"(allowed={sorted(allowed)}) affected={count}"
    )
    return count


def backfill_linkage(booking_id, fields):
    """Fill payment-linkage columns that are still NULL.

    Each column is a separate UPDATE ... WHERE <col> IS NULL, so two
    concurrent deliveries can't overwrite each other and status is never
    touched. Used when the status guard rejected an event but the event
    still carries ids the booking doesn't have yet.

    Returns the list of columns actually filled.
    """
    filled = []
    for column, value in _drop_empty(fields).items():
        if column not in LINKAGE_FIELDS:
            raise ValueError(f"{column} is not a payment-linkage field")

        col = getattr(Booking, column)
        stmt = (
            db.update(Booking)
            .where(Booking.id == booking_id)
            .where(col.is_(None))
            .values({column: value})
            .execution_options(synchronize_session=False)
        )
        if (db.session.execute(stmt).rowcount or 0) > 0:
            filled.append(column)

    if filled:
        logger.info(f"booking {booking_id}: backfilled {', '.join(filled)}")
    return filled
