"""Shared test fixtures for the DogShift payments test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- smtp: patched SMTP connection (no mail leaves the test run)
- seed_data: an owner, a sitter with a Connect account, and a pending booking
- add_booking: factory for more bookings between the seeded users
"""

from unittest.mock import patch

import pytest

from dogshift import create_app
from dogshift.extensions import db as _db
from dogshift.models.booking import BookingStatus
from dogshift.models.sitter import SitterProfile
from dogshift.models.user import User

from helpers import make_booking


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def smtp():
    """Patch SMTP for every test. Yields the connected server mock.

    Sent messages are recorded on smtp.send_message; set its side_effect
    to simulate a delivery failure.
    """
    with patch("dogshift.services.email_service.smtplib.SMTP") as mock_smtp:
        yield mock_smtp.return_value.__enter__.return_value


@pytest.fixture
def seed_data(app, db_session):
    """Seed an owner, a sitter (profile + Connect account) and a pending booking.

    Returns a dict of plain IDs so tests can use them across app contexts.
    """
    with app.app_context():
        # --- Dog owner ---
        owner = User(email="owner@dogshift.test", name="Olivia Owner")
        _db.session.add(owner)

        # --- Sitter + profile ---
        sitter = User(email="sitter@dogshift.test", name="Sam Sitter")
        _db.session.add(sitter)

        # --- Someone unrelated to the booking ---
        stranger = User(email="stranger@dogshift.test", name="Stan Stranger")
        _db.session.add(stranger)
        _db.session.flush()

        profile = SitterProfile(
            user_id=sitter.id,
            display_name="Sam's Dog Care",
            stripe_account_id="acct_test_sitter",
            stripe_account_status="PENDING",
        )
        _db.session.add(profile)
        _db.session.flush()

        # --- Booking awaiting payment ---
        booking = make_booking(owner.id, profile.id)

        _db.session.commit()

        return {
            "owner_id": owner.id,
            "sitter_user_id": sitter.id,
            "stranger_id": stranger.id,
            "sitter_profile_id": profile.id,
            "booking_id": booking.id,
        }


@pytest.fixture
def add_booking(app, seed_data):
    """Factory: add another booking between the seeded owner and sitter."""

    def _add(status=BookingStatus.PENDING_PAYMENT, **fields):
        with app.app_context():
            booking = make_booking(
                seed_data["owner_id"], seed_data["sitter_profile_id"], status, **fields
            )
            _db.session.commit()
            return booking.id

    return _add
