"""Tests for Stripe Connect account status (account.updated + dashboard endpoint)."""

from unittest.mock import MagicMock, patch

import stripe

from dogshift.extensions import db
from dogshift.models.sitter import SitterProfile
from dogshift.services.connect_service import (
    ENABLED,
    PENDING,
    RESTRICTED,
    compute_account_status,
)

from helpers import login, post_event, stripe_event


def account_updated(account_id="acct_test_sitter", charges=True, payouts=True,
                    currently_due=(), disabled_reason=None, event_id="evt_acct"):
    return stripe_event(
        "account.updated",
        {
            "id": account_id,
            "object": "account",
            "charges_enabled": charges,
            "payouts_enabled": payouts,
            "requirements": {
                "currently_due": list(currently_due),
                "disabled_reason": disabled_reason,
            },
        },
        event_id=event_id,
    )


def _profile(app, profile_id):
    with app.app_context():
        return db.session.get(SitterProfile, profile_id)


class TestComputeStatus:

    def test_enabled(self):
        assert compute_account_status(True, True) == ENABLED

    def test_restricted_when_disabled(self):
        assert compute_account_status(True, False, "rejected.fraud") == RESTRICTED

    def test_restricted_when_information_due(self):
        assert compute_account_status(False, False, None, ("external_account",)) == RESTRICTED

    def test_pending_while_onboarding(self):
        assert compute_account_status(False, False) == PENDING

    def test_enabled_wins_over_requirements(self):
        assert compute_account_status(True, True, None, ("tos_acceptance.date",)) == ENABLED


class TestAccountUpdatedWebhook:

    def test_enables_and_stamps_onboarding(self, client, seed_data, app):
        resp = post_event(client, account_updated())

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == ENABLED
        assert data["changed"] is True

        profile = _profile(app, seed_data["sitter_profile_id"])
        assert profile.stripe_account_status == ENABLED
        assert profile.stripe_onboarding_completed_at is not None

    def test_onboarding_stamp_not_moved(self, client, seed_data, app):
        post_event(client, account_updated(event_id="evt_1"))
        first = _profile(app, seed_data["sitter_profile_id"]).stripe_onboarding_completed_at

        # Restricted, then enabled again
        post_event(client, account_updated(payouts=False, currently_due=["external_account"],
                                           event_id="evt_2"))
        assert _profile(app, seed_data["sitter_profile_id"]).stripe_account_status == RESTRICTED
        post_event(client, account_updated(event_id="evt_3"))

        profile = _profile(app, seed_data["sitter_profile_id"])
        assert profile.stripe_account_status == ENABLED
        assert profile.stripe_onboarding_completed_at == first

    def test_pending_account_not_stamped(self, client, seed_data, app):
        post_event(client, account_updated(charges=False, payouts=False))

        profile = _profile(app, seed_data["sitter_profile_id"])
        assert profile.stripe_account_status == PENDING
        assert profile.stripe_onboarding_completed_at is None

    def test_unknown_account_ignored(self, client, seed_data):
        resp = post_event(client, account_updated(account_id="acct_nobody"))

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ignored"] is True
        assert data["reason"] == "ACCOUNT_NOT_FOUND"


class TestConnectStatusEndpoint:

    def test_requires_login(self, client, seed_data):
        resp = client.get("/host/stripe/connect/status")
        assert resp.status_code == 401

    def test_owner_is_forbidden(self, client, seed_data):
        login(client, seed_data["owner_id"])
        resp = client.get("/host/stripe/connect/status")

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "FORBIDDEN"

    @patch("dogshift.services.connect_service.stripe.Payout.list")
    @patch("dogshift.services.connect_service.stripe.Balance.retrieve")
    def test_summary_with_balance(self, mock_balance, mock_payouts, client, seed_data):
        mock_balance.return_value = MagicMock(
            available=[MagicMock(amount=6300, currency="chf")],
            pending=[MagicMock(amount=0, currency="chf")],
        )
        mock_payouts.return_value = MagicMock(data=[MagicMock(arrival_date=1798761600)])

        login(client, seed_data["sitter_user_id"])
        resp = client.get("/host/stripe/connect/status")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["hasAccount"] is True
        assert data["stripeAccountId"] == "acct_test_sitter"
        assert data["status"] == "PENDING"
        assert data["balance"]["available"] == [{"amount": 6300, "currency": "chf"}]
        assert data["nextPayoutDate"].startswith("2027-01-01")
        mock_balance.assert_called_once_with(stripe_account="acct_test_sitter")

    @patch("dogshift.services.connect_service.stripe.Balance.retrieve")
    def test_stripe_error_leaves_balance_null(self, mock_balance, client, seed_data):
        mock_balance.side_effect = stripe.StripeError("Account unreachable")

        login(client, seed_data["sitter_user_id"])
        resp = client.get("/host/stripe/connect/status")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["hasAccount"] is True
        assert data["balance"] is None
        assert data["nextPayoutDate"] is None

    def test_sitter_without_account(self, client, seed_data, app):
        with app.app_context():
            profile = db.session.get(SitterProfile, seed_data["sitter_profile_id"])
            profile.stripe_account_id = None
            db.session.commit()

        login(client, seed_data["sitter_user_id"])
        resp = client.get("/host/stripe/connect/status")

        assert resp.status_code == 200
        assert resp.get_json()["hasAccount"] is False
