"""Notification service — one-time notifications for booking events.

Responsible for:
- Deciding whether to notify (user preference, default on)
- Enforcing at-most-once delivery through the idempotency ledger
- Creating the in-app notification row (keyed, insert-if-absent)
- Rendering and sending the email
- Fanning a booking status change out to its participants

Dispatch order for one (recipient, kind, entity):

    preference -> ledger check -> in-app row (commit) -> email -> ledger row (commit)

A crash between the email and the ledger write can resend that one email on
retry; it never duplicates the in-app row and never loses the notification.
"""

import logging

from flask import current_app, render_template

from dogshift.extensions import db
from dogshift.models.booking import Booking, BookingStatus
from dogshift.models.notification import Notification, NotificationKind
from dogshift.models.user import User
from dogshift.services import notification_ledger, notification_prefs
from dogshift.services.email_service import EmailDeliveryError, send_email

logger = logging.getLogger(__name__)

# Dispatch outcomes
SENT = "sent"
SKIPPED_PREFERENCE = "skipped_preference"
SKIPPED_ALREADY_SENT = "skipped_already_sent"
RECIPIENT_NOT_FOUND = "recipient_not_found"
FAILED = "failed"

# kind -> (title, intro line, call-to-action label)
# newMessages and bookingReminder are preference keys only; nothing here sends them.
_CONTENT = {
    NotificationKind.NEW_BOOKING_REQUEST: (
        "New booking request",
        "You have received a new booking request.",
        "View the request",
    ),
    NotificationKind.BOOKING_CONFIRMED: (
        "Booking confirmed",
        "Your booking has been confirmed.",
        "View the booking",
    ),
    NotificationKind.PAYMENT_RECEIVED: (
        "Payment received",
        "The payment for your booking has been received.",
        "View the details",
    ),
    NotificationKind.BOOKING_CANCELLED: (
        "Booking cancelled",
        "A booking has been cancelled.",
        "View the booking",
    ),
    NotificationKind.BOOKING_REFUNDED: (
        "Refund issued",
        "A refund has been issued for a booking.",
        "View the booking",
    ),
    NotificationKind.BOOKING_REFUND_FAILED: (
        "Refund failed",
        "We could not refund a cancelled booking. Our team has been notified.",
        "View the booking",
    ),
}


# ──────────────────────────────────────────────
# Content
# ──────────────────────────────────────────────

def _path_for(payload):
    """Relative dashboard path for a notification payload."""
    booking_id = payload.get("booking_id")
    if not booking_id:
        return None
    if payload.get("dashboard") == "host":
        return f"/host/requests?id={booking_id}"
    return f"/account/bookings?id={booking_id}"


def render_notification(kind, payload, recipient_name=None):
    """Build (title, subject, text, html, path) for a notification."""
    title, intro, cta_label = _CONTENT[kind]
    path = _path_for(payload)
    base_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    url = f"{base_url}{path}" if (path and base_url) else None

    greeting = f"Hello {recipient_name}," if recipient_name else "Hello,"
    lines = [greeting, "", intro, ""]
    if payload.get("starts_at"):
        lines += [f"Starts: {payload['starts_at']}", ""]
    if url:
        lines += [f"{cta_label}: {url}", ""]
    lines.append("— DogShift")
    text = "\n".join(lines) + "\n"

    html = render_template(
        "emails/notification.html",
        title=title,
        greeting=greeting,
        intro=intro,
        starts_at=payload.get("starts_at"),
        cta_label=cta_label,
        cta_url=url,
    )
    return title, f"{title} – DogShift", text, html, path


# ──────────────────────────────────────────────
# In-app sink
# ──────────────────────────────────────────────

def create_in_app_notification(user_id, kind, idempotency_key, metadata=None,
                               title=None, body=None, url=None, entity_id=None):
    """Create an in-app notification unless one with this key exists.

    Returns True if a row was created, False if it was already there.
    Caller commits.
    """
    return notification_ledger.insert_ignoring_conflict(
        Notification,
        {
            "user_id": user_id,
            "kind": kind,
            "title": title or _CONTENT[kind][0],
            "body": body,
            "url": url,
            "entity_id": entity_id,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        },
        ["user_id", "idempotency_key"],
    )


# ──────────────────────────────────────────────
# Dispatcher
# ──────────────────────────────────────────────

def dispatch_notification(recipient_user_id, kind, entity_id, payload=None):
    """Notify one recipient at most once for (kind, entity_id).

    Returns one of SENT, SKIPPED_PREFERENCE, SKIPPED_ALREADY_SENT,
    RECIPIENT_NOT_FOUND, FAILED. Database errors propagate; the caller
    decides whether they are fatal.
    """
    if kind not in NotificationKind.ALL:
        raise ValueError(f"Unknown notification kind: {kind}")
    payload = payload or {}

    if not notification_prefs.is_enabled(recipient_user_id, kind):
        logger.info(f"Notification {kind}/{entity_id} -> {recipient_user_id}: preference off")
        return SKIPPED_PREFERENCE

    if notification_ledger.has_sent(recipient_user_id, kind, entity_id):
        logger.info(f"Notification {kind}/{entity_id} -> {recipient_user_id}: already sent")
        return SKIPPED_ALREADY_SENT

    user = db.session.get(User, recipient_user_id)
    if user is None:
        logger.warning(f"Notification {kind}/{entity_id}: recipient {recipient_user_id} not found")
        return RECIPIENT_NOT_FOUND

    title, subject, text, html, path = render_notification(kind, payload, user.name)

    create_in_app_notification(
        user_id=user.id,
        kind=kind,
        idempotency_key=f"{kind}:{entity_id}",
        metadata={k: v for k, v in payload.items() if v is not None},
        title=title,
        url=path,
        entity_id=payload.get("booking_id") or entity_id,
    )
    db.session.commit()

    try:
        send_email(to=user.email, subject=subject, text=text, html=html)
    except EmailDeliveryError as e:
        # No ledger row: a later delivery of the same event may try again.
        logger.error(f"Notification {kind}/{entity_id} -> {user.id}: email failed: {e}")
        return FAILED

    if notification_ledger.mark_sent(user.id, kind, entity_id):
        logger.info(f"Notification {kind}/{entity_id} sent to {user.id}")
    db.session.commit()
    return SENT


# ──────────────────────────────────────────────
# Booking fan-out
# ──────────────────────────────────────────────

def booking_participants(booking):
    """Return (owner_user_id, sitter_user_id) for a booking."""
    owner_id = booking.owner_id
    sitter_user_id = booking.sitter.user_id if booking.sitter else None
    return owner_id, sitter_user_id


def planned_notifications(booking, new_status):
    """List (recipient, kind, entity_id, payload) for a status change."""
    owner_id, sitter_user_id = booking_participants(booking)
    bid = booking.id
    account = {"booking_id": bid, "dashboard": "account"}
    host = {"booking_id": bid, "dashboard": "host"}

    if new_status == BookingStatus.PAID:
        return [
            (sitter_user_id, NotificationKind.NEW_BOOKING_REQUEST, f"{bid}:pending_acceptance", host),
            (owner_id, NotificationKind.PAYMENT_RECEIVED, f"{bid}:payment_received", account),
            (sitter_user_id, NotificationKind.PAYMENT_RECEIVED, f"{bid}:payment_received", host),
        ]
    if new_status == BookingStatus.CONFIRMED:
        return [
            (owner_id, NotificationKind.BOOKING_CONFIRMED, bid, account),
            (sitter_user_id, NotificationKind.BOOKING_CONFIRMED, bid, host),
        ]
    if new_status == BookingStatus.CANCELLED:
        return [
            (owner_id, NotificationKind.BOOKING_CANCELLED, bid, account),
            (sitter_user_id, NotificationKind.BOOKING_CANCELLED, bid, host),
        ]
    if new_status == BookingStatus.REFUNDED:
        return [
            (owner_id, NotificationKind.BOOKING_REFUNDED, bid, account),
            (sitter_user_id, NotificationKind.BOOKING_REFUNDED, bid, host),
        ]
    if new_status == BookingStatus.REFUND_FAILED:
        return [
            (owner_id, NotificationKind.BOOKING_REFUND_FAILED, bid, account),
        ]
    return []


def notify_booking_status(booking_id, new_status):
    """Notify participants that booking_id moved to new_status.

    Only call this after the status write was committed and actually
    changed a row. Each (recipient, kind) is dispatched on its own: a
    failure is logged and rolled back and never stops the others, and
    never propagates to the caller.

    Returns {(recipient, kind): outcome}.
    """
    results = {}
    try:
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            logger.warning(f"notify_booking_status: booking {booking_id} not found")
            return results
        plan = planned_notifications(booking, new_status)
    except Exception as e:
        logger.error(f"Failed to resolve participants for booking {booking_id}: {e}", exc_info=True)
        db.session.rollback()
        return results

    for recipient, kind, entity_id, payload in plan:
        if not recipient:
            continue
        try:
            outcome = dispatch_notification(recipient, kind, entity_id, payload)
        except Exception as e:
            logger.error(
                f"Notification {kind}/{entity_id} -> {recipient} failed: {e}",
                exc_info=True,
            )
            db.session.rollback()
            outcome = FAILED
        results[(recipient, kind)] = outcome

    return results
