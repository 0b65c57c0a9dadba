"""Tests for the flask CLI commands."""

from unittest.mock import MagicMock, patch

from dogshift.extensions import db
from dogshift.models.booking import Booking, BookingStatus
from dogshift.models.user import User


class TestSeedDemo:

    def test_creates_owner_sitter_and_booking(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-demo", "--stripe-account", "acct_demo"])

        assert result.exit_code == 0, result.output
        assert "Seed data created successfully!" in result.output
        with app.app_context():
            sitter = User.query.filter_by(email="sitter@dogshift.local").one()
            assert sitter.sitter_profile.stripe_account_id == "acct_demo"
            booking = Booking.query.one()
            assert booking.status == BookingStatus.PENDING_PAYMENT
            assert booking.amount == 7000

    def test_rerun_reuses_users(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=["seed-demo"])
        result = runner.invoke(args=["seed-demo"])

        assert result.exit_code == 0, result.output
        assert "Owner already exists" in result.output
        with app.app_context():
            assert User.query.count() == 2
            assert Booking.query.count() == 2


class TestReconcilePending:

    def test_dry_run_lists_without_calling_stripe(self, app, add_booking):
        add_booking(stripe_session_id="cs_dry")
        runner = app.test_cli_runner()

        with patch("dogshift.services.stripe_service.stripe.checkout.Session.retrieve") as mock_session:
            result = runner.invoke(args=["reconcile-pending", "--older-than", "0", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "session=cs_dry" in result.output
        mock_session.assert_not_called()

    def test_syncs_paid_sessions(self, app, add_booking):
        bid = add_booking(stripe_session_id="cs_paid")
        runner = app.test_cli_runner()

        with patch("dogshift.services.stripe_service.stripe.checkout.Session.retrieve") as mock_session:
            mock_session.return_value = MagicMock(
                id="cs_paid", payment_status="paid", payment_intent="pi_paid", livemode=False
            )
            result = runner.invoke(args=["reconcile-pending", "--older-than", "0"])

        assert result.exit_code == 0, result.output
        assert f"{bid} -> PAID" in result.output
        assert "Reconciled 1 booking(s)" in result.output
        with app.app_context():
            assert db.session.get(Booking, bid).status == BookingStatus.PAID
