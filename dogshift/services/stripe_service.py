"""Stripe service — all Stripe API calls and webhook handling.

Responsible for:
- Verifying webhook signatures against the raw request body
- Guarding against test/live mode cross-wiring
- Parsing events and handing them to the reconciliation engine
- Re-syncing a booking from Stripe when its webhook never arrived
- Creating refunds for cancelled bookings

There is no event-id table: reconciliation is idempotent because every
booking write is guarded on the current status (see booking_store).
"""

import json
import logging

import stripe
from flask import current_app

from dogshift.extensions import db
from dogshift.models.booking import BookingStatus
from dogshift.services import reconciliation_service
from dogshift.services.payment_events import (
    CheckoutCompleted,
    MalformedEventError,
    PaymentSucceeded,
    parse_event,
)

logger = logging.getLogger(__name__)


class WebhookPayloadError(ValueError):
    """Signature was valid but the body isn't a JSON event."""


def _configure_stripe():
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]


def expected_livemode():
    """True when the configured secret key is a live key."""
    key = current_app.config.get("STRIPE_SECRET_KEY") or ""
    return key.startswith("sk_live_") or key.startswith("rk_live_")


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify the Stripe-Signature header and decode the event.

    Returns the event as a plain dict.
    Raises stripe.SignatureVerificationError on an invalid signature,
    WebhookPayloadError if the verified body isn't a JSON object.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    tolerance = current_app.config.get("STRIPE_WEBHOOK_TOLERANCE", 300)
    stripe.WebhookSignature.verify_header(payload, sig_header, webhook_secret, tolerance)

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise WebhookPayloadError(f"Invalid JSON payload: {e}") from e
    if not isinstance(event, dict):
        raise WebhookPayloadError("Event payload is not an object")
    return event


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Returns (success: bool, body: dict). success is False only for
    infrastructure failures, which must surface as a non-2xx so Stripe
    redelivers the event.
    """
    event_id = event.get("id")
    event_type = event.get("type")
    livemode = bool(event.get("livemode", False))

    logger.info(f"Stripe event type={event_type} id={event_id} livemode={livemode}")

    if current_app.config.get("STRIPE_ENFORCE_LIVEMODE") and livemode != expected_livemode():
        logger.warning(
            f"Ignoring {event_type} {event_id}: livemode={livemode} "
            f"but key livemode={expected_livemode()}"
        )
        return True, reconciliation_service.ignored("LIVEMODE_MISMATCH")

    try:
        parsed = parse_event(event)
    except MalformedEventError as e:
        logger.warning(f"Ignoring malformed {event_type} {event_id}: {e}")
        return True, reconciliation_service.ignored("MALFORMED_EVENT")

    if parsed is None:
        logger.info(f"Ignoring unhandled event type={event_type} id={event_id}")
        return True, reconciliation_service.ignored("UNHANDLED_EVENT_TYPE")

    try:
        body = reconciliation_service.apply_payment_event(parsed)
    except Exception as e:
        logger.error(f"Error handling {event_type} {event_id}: {e}", exc_info=True)
        db.session.rollback()
        return False, {"ok": False, "error": "INTERNAL_ERROR"}

    return True, body


# ──────────────────────────────────────────────
# Re-sync from Stripe
# ──────────────────────────────────────────────

def _event_from_checkout_session(booking):
    session = stripe.checkout.Session.retrieve(booking.stripe_session_id)
    if getattr(session, "payment_status", None) != "paid":
        return None

    payment_intent = getattr(session, "payment_intent", None)
    if not isinstance(payment_intent, str):
        payment_intent = getattr(payment_intent, "id", None)

    return CheckoutCompleted(
        event_id=f"sync:{session.id}",
        livemode=bool(getattr(session, "livemode", False)),
        session_id=session.id,
        booking_id=booking.id,
        payment_intent_id=payment_intent or None,
    )


def _event_from_payment_intent(booking):
    intent = stripe.PaymentIntent.retrieve(booking.stripe_payment_intent_id)
    if getattr(intent, "status", None) != "succeeded":
        return None

    return PaymentSucceeded(
        event_id=f"sync:{intent.id}",
        livemode=bool(getattr(intent, "livemode", False)),
        payment_intent_id=intent.id,
        booking_id=booking.id,
    )


def sync_booking_from_stripe(booking):
    """Reconcile a PENDING_PAYMENT booking straight from Stripe.

    Used when the webhook is late or lost: asks Stripe whether the
    checkout session (or payment intent) was paid and, if so, feeds the
    same transition through the reconciliation engine, so the guard and
    notification idempotency are exactly those of the webhook path.

    Returns the engine acknowledgment, or None if Stripe has nothing to
    apply (or couldn't be reached).
    """
    if booking.status != BookingStatus.PENDING_PAYMENT:
        return None
    if not booking.stripe_session_id and not booking.stripe_payment_intent_id:
        return None

    _configure_stripe()
    event = None
    try:
        if booking.stripe_session_id:
            event = _event_from_checkout_session(booking)
        # An unpaid session may still have a stored intent that succeeded.
        if event is None and booking.stripe_payment_intent_id:
            event = _event_from_payment_intent(booking)
    except stripe.StripeError as e:
        logger.warning(f"Stripe sync failed for booking {booking.id}: {e}")
        return None

    if event is None:
        return None

    logger.info(f"Synced booking {booking.id} from Stripe ({event.event_id})")
    return reconciliation_service.apply_payment_event(event)


# ──────────────────────────────────────────────
# Refunds
# ──────────────────────────────────────────────

def create_refund(booking_id, payment_intent_id, reason_key="owner_cancel"):
    """Refund a booking's payment in full, reversing the sitter transfer.

    The idempotency key makes a retried cancel hit the same refund.
    Returns the Stripe Refund. Raises stripe.StripeError on failure.
    """
    _configure_stripe()
    return stripe.Refund.create(
        payment_intent=payment_intent_id,
        reason="requested_by_customer",
        reverse_transfer=True,
        refund_application_fee=True,
        metadata={"bookingId": booking_id},
        idempotency_key=f"refund:{reason_key}:{booking_id}:{payment_intent_id}",
    )
