"""Payment reconciliation engine.

Applies a verified, typed payment event to the booking it belongs to:

1. resolve the booking (metadata id, else stored session id / intent id)
2. one conditional UPDATE guarded on the current status
3. commit
4. notify participants, only if step 2 changed a row

Delivery is at-least-once and unordered. Correctness comes from the guard
in step 2 plus additive linkage writes, not from remembering event ids:
a duplicate or late event simply matches zero rows.

Store errors propagate (the ingress answers 500 and Stripe redelivers).
Notification errors never do.
"""

import logging

from dogshift.extensions import db
from dogshift.models.booking import BookingStatus
from dogshift.services import connect_service
from dogshift.services.booking_store import (
    BookingLookup,
    backfill_linkage,
    conditional_update_status,
    find_booking_for_event,
)
from dogshift.services.notification_service import notify_booking_status
from dogshift.services.payment_events import (
    PAYMENT_SUCCESS_EVENTS,
    AccountUpdated,
    CheckoutCompleted,
    ChargeSucceeded,
    PaymentFailed,
    PaymentSucceeded,
)

logger = logging.getLogger(__name__)

# PAID may only be reached from these. Everything else is either terminal
# (CONFIRMED, CANCELLED, REFUNDED) or already past payment (PAID,
# PENDING_ACCEPTANCE, REFUND_FAILED).
PAYMENT_SUCCESS_FROM = frozenset({
    BookingStatus.DRAFT,
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.PAYMENT_FAILED,
})

# PAYMENT_FAILED may only be reached from these. A booking that is already
# paid only fails on the intent it was paid with, never on a decline left
# over from an earlier attempt.
PAYMENT_FAILURE_UNPAID_FROM = frozenset({
    BookingStatus.DRAFT,
    BookingStatus.PENDING_PAYMENT,
})
PAYMENT_FAILURE_PAID_FROM = frozenset({
    BookingStatus.PAID,
    BookingStatus.PENDING_ACCEPTANCE,
})


def ack(**fields):
    """Webhook acknowledgment body."""
    return {"received": True, **fields}


def ignored(reason, **fields):
    return ack(ignored=True, reason=reason, **fields)


# ──────────────────────────────────────────────
# Event -> booking mapping
# ──────────────────────────────────────────────

def lookup_for(event):
    """BookingLookup criteria carried by a booking-scoped event."""
    if isinstance(event, CheckoutCompleted):
        return BookingLookup(
            booking_id=event.booking_id,
            session_id=event.session_id,
            payment_intent_id=event.payment_intent_id,
        )
    return BookingLookup(
        booking_id=event.booking_id,
        payment_intent_id=event.payment_intent_id,
    )


def linkage_for(event):
    """Stripe ids the event lets us record on the booking."""
    if isinstance(event, CheckoutCompleted):
        return {
            "stripe_session_id": event.session_id,
            "stripe_payment_intent_id": event.payment_intent_id,
        }
    if isinstance(event, PaymentSucceeded):
        return {
            "stripe_payment_intent_id": event.payment_intent_id,
            "stripe_transfer_id": event.transfer_id,
        }
    if isinstance(event, ChargeSucceeded):
        return {
            "stripe_payment_intent_id": event.payment_intent_id,
            "stripe_transfer_id": event.transfer_id,
        }
    if isinstance(event, PaymentFailed):
        return {"stripe_payment_intent_id": event.payment_intent_id}
    return {}


def _resolve(event):
    """Return (booking, None) or (None, ignored-ack)."""
    criteria = lookup_for(event)
    if criteria.is_empty:
        logger.warning(f"{event.kind} {event.event_id}: no booking id, session or intent")
        return None, ignored("MISSING_BOOKING_ID")

    booking = find_booking_for_event(criteria)
    if booking is None:
        logger.warning(
            f"{event.kind} {event.event_id}: no booking for "
            f"bookingId={criteria.booking_id or '?'} "
            f"session={criteria.session_id or '?'} "
            f"intent={criteria.payment_intent_id or '?'}"
        )
        return None, ignored("BOOKING_NOT_FOUND")

    return booking, None


# ──────────────────────────────────────────────
# Transitions
# ──────────────────────────────────────────────

def _apply_payment_success(event):
    booking, skipped = _resolve(event)
    if skipped:
        return skipped

    booking_id = booking.id
    linkage = linkage_for(event)

    count = conditional_update_status(
        booking_id,
        PAYMENT_SUCCESS_FROM,
        {"status": BookingStatus.PAID, **linkage},
    )
    if count == 0:
        # Already reconciled (duplicate, concurrent or reordered delivery)
        # or terminal. Still record ids we didn't have, without touching
        # status, so checkout/payment events commute.
        backfill_linkage(booking_id, linkage)
    db.session.commit()

    status = booking.status
    logger.info(
        f"{event.kind} {event.event_id}: booking {booking_id} -> {status} "
        f"(changed={count > 0})"
    )

    if count > 0:
        notify_booking_status(booking_id, BookingStatus.PAID)

    return ack(bookingId=booking_id, status=status, changed=count > 0)


def _apply_payment_failed(event):
    booking, skipped = _resolve(event)
    if skipped:
        return skipped

    booking_id = booking.id
    count = conditional_update_status(
        booking_id,
        PAYMENT_FAILURE_UNPAID_FROM,
        {"status": BookingStatus.PAYMENT_FAILED, **linkage_for(event)},
    )
    if count == 0:
        count = conditional_update_status(
            booking_id,
            PAYMENT_FAILURE_PAID_FROM,
            {"status": BookingStatus.PAYMENT_FAILED},
            stored_payment_intent_id=event.payment_intent_id,
        )
    db.session.commit()

    status = booking.status
    logger.info(
        f"{event.kind} {event.event_id}: booking {booking_id} -> {status} "
        f"(changed={count > 0}) reason={event.failure_message or '?'}"
    )
    return ack(bookingId=booking_id, status=status, changed=count > 0)


def apply_payment_event(event):
    """Apply a parsed PaymentEvent. Returns the acknowledgment body.

    Raises on store failures; the caller rolls back and reports a
    retryable error.
    """
    if isinstance(event, AccountUpdated):
        return connect_service.apply_account_update(event)
    if isinstance(event, PAYMENT_SUCCESS_EVENTS):
        return _apply_payment_success(event)
    if isinstance(event, PaymentFailed):
        return _apply_payment_failed(event)
    raise TypeError(f"Unsupported payment event: {type(event).__name__}")
