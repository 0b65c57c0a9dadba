"""Webhooks blueprint — /stripe/webhooks

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.

Routes:
- POST /stripe/webhooks        — Stripe endpoint
- POST /api/webhooks/stripe    — same handler, path configured on older endpoints
"""

import logging

import stripe
from flask import Blueprint, current_app, jsonify, request

from dogshift.services.stripe_service import (
    WebhookPayloadError,
    handle_webhook_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


def _error(code, status):
    return jsonify({"ok": False, "error": code}), status


@webhooks_bp.route("/stripe/webhooks", methods=["POST"])
@webhooks_bp.route("/api/webhooks/stripe", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via guarded booking writes)
    4. Return 200 to acknowledge, 500 so Stripe retries

    CSRF is exempted for this blueprint in create_app().
    """
    if not current_app.config.get("STRIPE_WEBHOOK_SECRET"):
        logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        return _error("MISSING_WEBHOOK_SECRET", 500)

    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return _error("MISSING_SIGNATURE", 400)

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return _error("INVALID_SIGNATURE", 400)
    except WebhookPayloadError as e:
        logger.warning(f"Webhook payload rejected: {e}")
        return _error("INVALID_PAYLOAD", 400)

    # --- Process event ---
    success, body = handle_webhook_event(event)

    if success:
        return jsonify(body), 200
    else:
        logger.error(f"Webhook processing failed for event {event.get('id')}")
        return jsonify(body), 500
