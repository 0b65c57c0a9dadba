"""Tests for the notification dispatcher, ledger and preferences.

Covers:
- Preference off -> skipped, nothing written
- Ledger row present -> skipped
- Missing recipient
- Email failure leaves no ledger row
- In-app notification created once per (user, kind, entity)
- mark_sent conflict returns False
- Booking fan-out per status
"""

import smtplib
from datetime import datetime, timezone

from dogshift.extensions import db
from dogshift.models.booking import BookingStatus
from dogshift.models.notification import (
    Notification,
    NotificationKind,
    NotificationSendLog,
)
from dogshift.services import notification_ledger, notification_prefs
from dogshift.services import notification_service as ns


class TestPreferences:

    def test_default_enabled(self, seed_data):
        assert notification_prefs.is_enabled(
            seed_data["owner_id"], NotificationKind.PAYMENT_RECEIVED
        )

    def test_disabled_preference(self, seed_data):
        notification_prefs.set_preference(
            seed_data["owner_id"], NotificationKind.PAYMENT_RECEIVED, False
        )
        db.session.commit()

        assert not notification_prefs.is_enabled(
            seed_data["owner_id"], NotificationKind.PAYMENT_RECEIVED
        )
        # other kinds unaffected
        assert notification_prefs.is_enabled(
            seed_data["owner_id"], NotificationKind.BOOKING_CONFIRMED
        )

    def test_preference_can_be_turned_back_on(self, seed_data):
        owner = seed_data["owner_id"]
        notification_prefs.set_preference(owner, NotificationKind.BOOKING_REMINDER, False)
        db.session.commit()
        notification_prefs.set_preference(owner, NotificationKind.BOOKING_REMINDER, True)
        db.session.commit()

        assert notification_prefs.is_enabled(owner, NotificationKind.BOOKING_REMINDER)


class TestLedger:

    def test_mark_sent_then_has_sent(self, seed_data):
        owner = seed_data["owner_id"]
        assert not notification_ledger.has_sent(owner, NotificationKind.PAYMENT_RECEIVED, "b1")

        assert notification_ledger.mark_sent(owner, NotificationKind.PAYMENT_RECEIVED, "b1")
        db.session.commit()

        assert notification_ledger.has_sent(owner, NotificationKind.PAYMENT_RECEIVED, "b1")

    def test_conflict_returns_false(self, seed_data):
        owner = seed_data["owner_id"]
        first = notification_ledger.mark_sent(owner, NotificationKind.PAYMENT_RECEIVED, "b1")
        db.session.commit()
        second = notification_ledger.mark_sent(
            owner, NotificationKind.PAYMENT_RECEIVED, "b1", at=datetime.now(timezone.utc)
        )
        db.session.commit()

        assert first is True
        assert second is False
        assert NotificationSendLog.query.count() == 1


class TestDispatch:

    def test_sends_and_records(self, seed_data, smtp):
        owner = seed_data["owner_id"]
        outcome = ns.dispatch_notification(
            owner,
            NotificationKind.PAYMENT_RECEIVED,
            "b1:payment_received",
            {"booking_id": "b1", "dashboard": "account"},
        )

        assert outcome == ns.SENT
        assert smtp.send_message.call_count == 1
        msg = smtp.send_message.call_args[0][0]
        assert msg["To"] == "owner@dogshift.test"
        assert msg["Subject"] == "Payment received – DogShift"

        assert notification_ledger.has_sent(owner, NotificationKind.PAYMENT_RECEIVED, "b1:payment_received")
        inbox = Notification.query.filter_by(user_id=owner).all()
        assert len(inbox) == 1
        assert inbox[0].idempotency_key == "paymentReceived:b1:payment_received"
        assert inbox[0].url == "/account/bookings?id=b1"
        assert inbox[0].entity_id == "b1"

    def test_second_dispatch_skipped(self, seed_data, smtp):
        owner = seed_data["owner_id"]
        ns.dispatch_notification(owner, NotificationKind.BOOKING_CONFIRMED, "b1")
        outcome = ns.dispatch_notification(owner, NotificationKind.BOOKING_CONFIRMED, "b1")

        assert outcome == ns.SKIPPED_ALREADY_SENT
        assert smtp.send_message.call_count == 1
        assert Notification.query.filter_by(user_id=owner).count() == 1

    def test_preference_off_skips_everything(self, seed_data, smtp):
        owner = seed_data["owner_id"]
        notification_prefs.set_preference(owner, NotificationKind.BOOKING_CONFIRMED, False)
        db.session.commit()

        outcome = ns.dispatch_notification(owner, NotificationKind.BOOKING_CONFIRMED, "b1")

        assert outcome == ns.SKIPPED_PREFERENCE
        smtp.send_message.assert_not_called()
        assert NotificationSendLog.query.count() == 0
        assert Notification.query.count() == 0

    def test_missing_recipient(self, seed_data, smtp):
        outcome = ns.dispatch_notification("ghost", NotificationKind.BOOKING_CONFIRMED, "b1")

        assert outcome == ns.RECIPIENT_NOT_FOUND
        smtp.send_message.assert_not_called()

    def test_email_failure_leaves_no_ledger_row(self, seed_data, smtp):
        owner = seed_data["owner_id"]
        smtp.send_message.side_effect = smtplib.SMTPException("450 try later")

        outcome = ns.dispatch_notification(owner, NotificationKind.BOOKING_CONFIRMED, "b1")
        assert outcome == ns.FAILED
        assert not notification_ledger.has_sent(owner, NotificationKind.BOOKING_CONFIRMED, "b1")

        # Retry after the mail server recovers: sent once, still one inbox row
        smtp.send_message.side_effect = None
        outcome = ns.dispatch_notification(owner, NotificationKind.BOOKING_CONFIRMED, "b1")
        assert outcome == ns.SENT
        assert Notification.query.filter_by(user_id=owner).count() == 1

    def test_suppressed_mail_still_recorded(self, seed_data, smtp, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_SUPPRESS_SEND", True)
        owner = seed_data["owner_id"]

        outcome = ns.dispatch_notification(owner, NotificationKind.BOOKING_CONFIRMED, "b1")

        assert outcome == ns.SENT
        smtp.send_message.assert_not_called()
        assert notification_ledger.has_sent(owner, NotificationKind.BOOKING_CONFIRMED, "b1")


class TestInAppSink:

    def test_insert_if_absent(self, seed_data):
        owner = seed_data["owner_id"]
        created = ns.create_in_app_notification(
            owner, NotificationKind.BOOKING_CONFIRMED, "bookingConfirmed:b1",
            metadata={"booking_id": "b1"},
        )
        again = ns.create_in_app_notification(
            owner, NotificationKind.BOOKING_CONFIRMED, "bookingConfirmed:b1",
        )
        db.session.commit()

        assert created is True
        assert again is False
        row = Notification.query.filter_by(user_id=owner).one()
        assert row.title == "Booking confirmed"
        assert row.metadata_ == {"booking_id": "b1"}


class TestRendering:

    def test_host_link_and_start_date(self, app):
        title, subject, text, html, path = ns.render_notification(
            NotificationKind.NEW_BOOKING_REQUEST,
            {"booking_id": "b1", "dashboard": "host", "starts_at": "2026-11-01"},
            "Sam",
        )

        assert title == "New booking request"
        assert path == "/host/requests?id=b1"
        assert "Hello Sam," in text
        assert "http://localhost:5000/host/requests?id=b1" in text
        assert "Starts: 2026-11-01" in html


class TestBookingFanOut:

    def _plan(self, seed_data, status):
        from dogshift.models.booking import Booking

        booking = db.session.get(Booking, seed_data["booking_id"])
        return [
            (recipient, kind, entity)
            for recipient, kind, entity, _ in ns.planned_notifications(booking, status)
        ]

    def test_confirmed_notifies_both(self, seed_data):
        bid = seed_data["booking_id"]
        assert self._plan(seed_data, BookingStatus.CONFIRMED) == [
            (seed_data["owner_id"], NotificationKind.BOOKING_CONFIRMED, bid),
            (seed_data["sitter_user_id"], NotificationKind.BOOKING_CONFIRMED, bid),
        ]

    def test_refund_failed_notifies_owner_only(self, seed_data):
        assert self._plan(seed_data, BookingStatus.REFUND_FAILED) == [
            (seed_data["owner_id"], NotificationKind.BOOKING_REFUND_FAILED, seed_data["booking_id"]),
        ]

    def test_payment_failed_notifies_nobody(self, seed_data):
        assert self._plan(seed_data, BookingStatus.PAYMENT_FAILED) == []

    def test_notify_returns_outcomes(self, seed_data, smtp):
        results = ns.notify_booking_status(seed_data["booking_id"], BookingStatus.CANCELLED)

        assert results == {
            (seed_data["owner_id"], NotificationKind.BOOKING_CANCELLED): ns.SENT,
            (seed_data["sitter_user_id"], NotificationKind.BOOKING_CANCELLED): ns.SENT,
        }
        assert smtp.send_message.call_count == 2
