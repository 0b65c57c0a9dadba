"""Stripe Connect service — sitter payout accounts.

Responsible for:
- Computing the account status from Stripe's capability flags
- Applying account.updated webhooks to the sitter profile
- Building the payout summary shown on the sitter dashboard
"""

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

from dogshift.extensions import db
from dogshift.models.sitter import SitterProfile

logger = logging.getLogger(__name__)

ENABLED = "ENABLED"
RESTRICTED = "RESTRICTED"
PENDING = "PENDING"


def compute_account_status(charges_enabled, payouts_enabled,
                           disabled_reason=None, currently_due=()):
    """Derive PENDING / ENABLED / RESTRICTED from Stripe's account flags.

    - both charges and payouts enabled -> ENABLED
    - Stripe disabled the account or needs information now -> RESTRICTED
    - otherwise (onboarding still in progress) -> PENDING
    """
    if charges_enabled and payouts_enabled:
        return ENABLED
    if disabled_reason or len(currently_due) > 0:
        return RESTRICTED
    return PENDING


def apply_account_update(event):
    """Handle account.updated: recompute and store the sitter's status.

    Stamps stripe_onboarding_completed_at the first time the account
    becomes ENABLED. Never touches bookings.
    """
    profile = SitterProfile.query.filter_by(
        stripe_account_id=event.account_id
    ).first()
    if profile is None:
        logger.warning(f"account.updated: no sitter for account={event.account_id}")
        return {"received": True, "ignored": True, "reason": "ACCOUNT_NOT_FOUND"}

    status = compute_account_status(
        event.charges_enabled,
        event.payouts_enabled,
        event.disabled_reason,
        event.currently_due,
    )
    previous = profile.stripe_account_status
    profile.stripe_account_status = status

    if status == ENABLED and profile.stripe_onboarding_completed_at is None:
        profile.stripe_onboarding_completed_at = datetime.now(timezone.utc)
        logger.info(f"Sitter {profile.id} completed Stripe onboarding ({event.account_id})")

    db.session.commit()

    logger.info(
        f"account.updated {event.account_id}: {previous or '-'} -> {status} "
        f"(charges={event.charges_enabled} payouts={event.payouts_enabled})"
    )
    return {
        "received": True,
        "accountId": event.account_id,
        "status": status,
        "changed": previous != status,
    }


# ──────────────────────────────────────────────
# Dashboard summary
# ──────────────────────────────────────────────

def _amounts(entries):
    return [
        {"amount": getattr(entry, "amount", 0), "currency": getattr(entry, "currency", None)}
        for entry in (entries or [])
    ]


def _fetch_payout_info(account_id):
    """Return (balance, next_payout_iso) from Stripe, or (None, None)."""
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    try:
        balance = stripe.Balance.retrieve(stripe_account=account_id)
        payouts = stripe.Payout.list(
            limit=1, status="pending", stripe_account=account_id
        )
    except stripe.StripeError as e:
        logger.warning(f"Could not load payout info for {account_id}: {e}")
        return None, None

    summary = {
        "available": _amounts(getattr(balance, "available", None)),
        "pending": _amounts(getattr(balance, "pending", None)),
    }

    next_payout = None
    data = getattr(payouts, "data", None) or []
    if data and getattr(data[0], "arrival_date", None):
        next_payout = datetime.fromtimestamp(
            data[0].arrival_date, tz=timezone.utc
        ).isoformat()

    return summary, next_payout


def connect_status_summary(profile):
    """Payout account summary for the sitter dashboard.

    status is the last value computed from account.updated; balance and
    next payout date are read live from Stripe and left null if Stripe
    can't be reached.
    """
    account_id = profile.stripe_account_id
    if not account_id:
        return {"hasAccount": False, "status": None}

    balance, next_payout = _fetch_payout_info(account_id)
    completed_at = profile.stripe_onboarding_completed_at

    return {
        "hasAccount": True,
        "stripeAccountId": account_id,
        "status": profile.stripe_account_status,
        "onboardingCompletedAt": completed_at.isoformat() if completed_at else None,
        "balance": balance,
        "nextPayoutDate": next_payout,
    }
