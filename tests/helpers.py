"""Test helpers: signed Stripe webhook posts, event builders, login."""

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

from flask import g, has_app_context

from dogshift.extensions import db
from dogshift.models.booking import Booking, BookingStatus

WEBHOOK_SECRET = "whsec_test_fake"


def make_booking(owner_id, sitter_id, status=BookingStatus.PENDING_PAYMENT,
                 start_in=timedelta(days=7), **fields):
    start = datetime.now(timezone.utc) + start_in
    booking = Booking(
        owner_id=owner_id,
        sitter_id=sitter_id,
        amount=fields.pop("amount", 7000),
        currency=fields.pop("currency", "chf"),
        status=status,
        start_date=start,
        end_date=start + timedelta(days=2),
        **fields,
    )
    db.session.add(booking)
    db.session.flush()
    return booking


def login(client, user_id):
    """Log a user in by writing the Flask-Login session."""
    with client.session_transaction() as sess:
        sess["_user_id"] = user_id
        sess["_fresh"] = True
    # The autouse db_session fixture keeps one app context pushed for the
    # whole test, so Flask-Login's per-context user cache would otherwise
    # leak the previously logged-in user into the next request.
    if has_app_context():
        g.pop("_login_user", None)


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type, obj, event_id="evt_test_001", livemode=False):
    """A Stripe event envelope around a data.object."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "livemode": livemode,
        "data": {"object": obj},
    }


def post_event(client, event, secret=WEBHOOK_SECRET, path="/stripe/webhooks"):
    """POST a correctly signed event to the webhook endpoint."""
    payload = json.dumps(event)
    return client.post(
        path,
        data=payload,
        content_type="application/json",
        headers={"Stripe-Signature": sign_payload(payload, secret)},
    )


def payment_intent_succeeded(booking_id, intent_id="pi_1", transfer_id=None,
                             event_id="evt_pi_succeeded"):
    obj = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": 7000,
        "currency": "chf",
        "metadata": {"bookingId": booking_id} if booking_id else {},
    }
    if transfer_id:
        obj["latest_charge"] = {"id": "ch_1", "transfer": transfer_id}
    return stripe_event("payment_intent.succeeded", obj, event_id=event_id)


def checkout_session_completed(booking_id, session_id="cs_1", intent_id="pi_1",
                               event_id="evt_checkout_completed"):
    return stripe_event(
        "checkout.session.completed",
        {
            "id": session_id,
            "object": "checkout.session",
            "payment_status": "paid",
            "payment_intent": intent_id,
            "metadata": {"bookingId": booking_id} if booking_id else {},
        },
        event_id=event_id,
    )


def payment_intent_failed(booking_id, intent_id="pi_1", event_id="evt_pi_failed"):
    return stripe_event(
        "payment_intent.payment_failed",
        {
            "id": intent_id,
            "object": "payment_intent",
            "metadata": {"bookingId": booking_id} if booking_id else {},
            "last_payment_error": {"message": "Your card was declined."},
        },
        event_id=event_id,
    )
