"""Booking service — explicit owner and sitter actions.

Responsible for:
- Sitter acceptance (PAID / PENDING_ACCEPTANCE -> CONFIRMED)
- Owner cancellation, with a Stripe refund when the booking was paid
- Payment status polling, with a Stripe resync while payment is pending

Every status write goes through booking_store.conditional_update_status,
the same guarded UPDATE the webhook path uses, so an action racing a
webhook can't overwrite a status the other already moved on.

Functions return (ok, payload_or_error_code, http_status).
"""

import logging
from datetime import datetime, timedelta, timezone

import stripe
from flask import current_app

from dogshift.extensions import db
from dogshift.models.booking import Booking, BookingStatus
from dogshift.services import stripe_service
from dogshift.services.booking_store import conditional_update_status
from dogshift.services.notification_service import notify_booking_status

logger = logging.getLogger(__name__)

ACCEPTABLE_FROM = frozenset({
    BookingStatus.PAID,
    BookingStatus.PENDING_ACCEPTANCE,
})

# Cancelled without a refund: nothing was charged.
UNPAID_STATUSES = frozenset({
    BookingStatus.DRAFT,
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.PAYMENT_FAILED,
})

# Cancelled with a refund.
REFUNDABLE_STATUSES = frozenset({
    BookingStatus.PAID,
    BookingStatus.PENDING_ACCEPTANCE,
    BookingStatus.CONFIRMED,
})


def _as_utc(value):
    # SQLite hands back naive datetimes even for timezone=True columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _current_status(booking_id):
    return db.session.query(Booking.status).filter(Booking.id == booking_id).scalar()


# ──────────────────────────────────────────────
# Sitter acceptance
# ──────────────────────────────────────────────

def accept_booking(booking_id, sitter_profile):
    """Sitter accepts a paid booking request."""
    booking = db.session.get(Booking, booking_id)
    if booking is None or sitter_profile is None or booking.sitter_id != sitter_profile.id:
        return False, "NOT_FOUND", 404

    count = conditional_update_status(
        booking_id, ACCEPTABLE_FROM, {"status": BookingStatus.CONFIRMED}
    )
    db.session.commit()

    if count == 0:
        status = _current_status(booking_id)
        logger.info(f"Accept rejected for booking {booking_id}: status={status}")
        return False, "INVALID_STATUS", 409

    logger.info(f"Booking {booking_id} confirmed by sitter {sitter_profile.id}")
    notify_booking_status(booking_id, BookingStatus.CONFIRMED)
    return True, {"bookingId": booking_id, "status": BookingStatus.CONFIRMED}, 200


# ──────────────────────────────────────────────
# Owner cancellation
# ──────────────────────────────────────────────

def _too_late(booking, now):
    start = _as_utc(booking.start_date)
    if start is None:
        return False
    window = timedelta(hours=current_app.config.get("CANCELLATION_WINDOW_HOURS", 24))
    return start - now < window


def _cancel_unpaid(booking_id, now):
    count = conditional_update_status(
        booking_id,
        UNPAID_STATUSES,
        {"status": BookingStatus.CANCELLED, "canceled_at": now},
    )
    db.session.commit()
    if count == 0:
        return False, "INVALID_STATUS", 409

    logger.info(f"Booking {booking_id} cancelled (unpaid)")
    notify_booking_status(booking_id, BookingStatus.CANCELLED)
    return True, {"bookingId": booking_id, "status": BookingStatus.CANCELLED}, 200


def _cancel_with_refund(booking_id, payment_intent_id, now):
    try:
        refund = stripe_service.create_refund(booking_id, payment_intent_id)
    except stripe.StripeError as e:
        logger.error(f"Refund failed for booking {booking_id} ({payment_intent_id}): {e}")
        count = conditional_update_status(
            booking_id,
            REFUNDABLE_STATUSES,
            {"status": BookingStatus.REFUND_FAILED, "canceled_at": now},
        )
        db.session.commit()
        if count > 0:
            notify_booking_status(booking_id, BookingStatus.REFUND_FAILED)
        return False, "REFUND_FAILED", 502

    count = conditional_update_status(
        booking_id,
        REFUNDABLE_STATUSES | {BookingStatus.REFUND_FAILED},
        {
            "status": BookingStatus.REFUNDED,
            "stripe_refund_id": refund.id,
            "refunded_at": now,
            "canceled_at": now,
        },
    )
    db.session.commit()

    if count == 0:
        # Refund went through but someone else moved the booking first.
        logger.warning(
            f"Refund {refund.id} created for booking {booking_id} "
            f"but status is now {_current_status(booking_id)}"
        )
        return False, "INVALID_STATUS", 409

    logger.info(f"Booking {booking_id} refunded ({refund.id})")
    notify_booking_status(booking_id, BookingStatus.REFUNDED)
    return True, {
        "bookingId": booking_id,
        "status": BookingStatus.REFUNDED,
        "refundId": refund.id,
    }, 200


def cancel_booking(booking_id, user, now=None):
    """Owner cancels a booking, refunding it if it was paid."""
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return False, "NOT_FOUND", 404
    if booking.owner_id != user.id:
        return False, "FORBIDDEN", 403

    if booking.status == BookingStatus.CANCELLED:
        return False, "ALREADY_CANCELED", 409
    if booking.status == BookingStatus.REFUNDED:
        return False, "ALREADY_REFUNDED", 409

    now = now or datetime.now(timezone.utc)
    # The owner already cancelled in time; only the refund is being retried.
    if booking.status != BookingStatus.REFUND_FAILED and _too_late(booking, now):
        return False, "TOO_LATE", 409

    if booking.status in UNPAID_STATUSES:
        return _cancel_unpaid(booking_id, now)

    if booking.status in REFUNDABLE_STATUSES or booking.status == BookingStatus.REFUND_FAILED:
        if not booking.stripe_payment_intent_id:
            return False, "MISSING_PAYMENT_INTENT", 409
        return _cancel_with_refund(booking_id, booking.stripe_payment_intent_id, now)

    return False, "INVALID_STATUS", 409


# ──────────────────────────────────────────────
# Status polling
# ──────────────────────────────────────────────

def booking_status(booking_id, user):
    """Payment status for the booking page, polled after checkout.

    While the booking is still PENDING_PAYMENT, try a Stripe resync so a
    late or lost webhook doesn't leave the owner waiting.
    """
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return False, "NOT_FOUND", 404

    sitter_user_id = booking.sitter.user_id if booking.sitter else None
    if user.id not in (booking.owner_id, sitter_user_id):
        return False, "FORBIDDEN", 403

    if booking.status == BookingStatus.PENDING_PAYMENT:
        stripe_service.sync_booking_from_stripe(booking)
        db.session.refresh(booking)

    return True, {
        "bookingId": booking.id,
        "status": booking.status,
        "finalizing": booking.status == BookingStatus.PENDING_PAYMENT,
    }, 200


def pending_bookings(older_than_minutes):
    """Bookings stuck in PENDING_PAYMENT for longer than older_than_minutes."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
    return (
        Booking.query
        .filter(Booking.status == BookingStatus.PENDING_PAYMENT)
        .filter(Booking.created_at <= cutoff)
        .order_by(Booking.created_at)
        .all()
    )
