"""Bookings blueprint — /account/bookings/*

Owner-side booking actions.

Routes:
- POST /account/bookings/<id>/cancel  — cancel (refunds a paid booking)
- GET  /account/bookings/<id>/status  — payment status, polled after checkout
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from dogshift.extensions import limiter
from dogshift.services import booking_service

bookings_bp = Blueprint("bookings", __name__, url_prefix="/account/bookings")


def _respond(ok, payload, status):
    if ok:
        return jsonify({"ok": True, **payload}), status
    return jsonify({"ok": False, "error": payload}), status


# ──────────────────────────────────────────────
# POST /account/bookings/<id>/cancel
# ──────────────────────────────────────────────

@bookings_bp.route("/<booking_id>/cancel", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
def cancel(booking_id):
    """Owner cancels a booking.

    Unpaid bookings are simply cancelled. Paid ones are refunded through
    Stripe (transfer reversed) and end up REFUNDED, or REFUND_FAILED if
    Stripe refuses.
    """
    return _respond(*booking_service.cancel_booking(booking_id, current_user))


# ──────────────────────────────────────────────
# GET /account/bookings/<id>/status — AJAX poll
# ──────────────────────────────────────────────

@bookings_bp.route("/<booking_id>/status")
@login_required
def status(booking_id):
    """JSON endpoint polled by the checkout success page.

    If the webhook hasn't arrived yet, the booking is synced straight from
    Stripe; finalizing stays true until the payment is reconciled.
    """
    return _respond(*booking_service.booking_status(booking_id, current_user))
