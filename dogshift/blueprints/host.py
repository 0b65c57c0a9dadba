"""Host blueprint — /host/*

Sitter-side routes. All protected by @sitter_required.

Routes:
- POST /host/requests/<id>/accept   — accept a paid booking request
- GET  /host/stripe/connect/status  — payout account status and balance
"""

import logging

from flask import Blueprint, g, jsonify

from dogshift.decorators import sitter_required
from dogshift.services import booking_service
from dogshift.services.connect_service import connect_status_summary

logger = logging.getLogger(__name__)

host_bp = Blueprint("host", __name__, url_prefix="/host")


@host_bp.route("/requests/<booking_id>/accept", methods=["POST"])
@sitter_required
def accept_request(booking_id):
    """Sitter accepts a booking request; both parties are notified."""
    ok, payload, status = booking_service.accept_booking(booking_id, g.sitter_profile)
    if not ok:
        return jsonify({"ok": False, "error": payload}), status
    return jsonify({"ok": True, **payload}), status


@host_bp.route("/stripe/connect/status")
@sitter_required
def connect_status():
    """Stripe Connect payout account summary for the sitter dashboard."""
    return jsonify({"ok": True, **connect_status_summary(g.sitter_profile)}), 200
