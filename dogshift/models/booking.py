"""Booking model.

booking.status is driven by two writers only: the payment reconciliation
engine (Stripe webhooks) and explicit owner/sitter actions. Both go through
booking_store.conditional_update_status so that a terminal status is never
overwritten.
"""

import uuid

from dogshift.extensions import db


class BookingStatus:
    DRAFT = "DRAFT"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    CONFIRMED = "CONFIRMED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    REFUND_FAILED = "REFUND_FAILED"

    ALL = frozenset({
        DRAFT,
        PENDING_PAYMENT,
        PAID,
        PENDING_ACCEPTANCE,
        CONFIRMED,
        PAYMENT_FAILED,
        CANCELLED,
        REFUNDED,
        REFUND_FAILED,
    })

    # No payment event may move a booking out of these.
    TERMINAL = frozenset({CONFIRMED, CANCELLED, REFUNDED})


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    sitter_id = db.Column(
        db.String(36),
        db.ForeignKey("sitter_profiles.id"),
        nullable=False,
        index=True,
    )

    # --- Commercial ---
    amount = db.Column(db.Integer, nullable=False)  # minor units (cents)
    currency = db.Column(db.String(3), nullable=False, default="chf")

    status = db.Column(
        db.String(30), nullable=False, default=BookingStatus.PENDING_PAYMENT
    )

    # --- Stripe linkage (filled in as events arrive, never cleared) ---
    stripe_payment_intent_id = db.Column(
        db.String(255), nullable=True, index=True
    )
    stripe_session_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_transfer_id = db.Column(db.String(255), nullable=True)
    stripe_refund_id = db.Column(db.String(255), nullable=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    owner = db.relationship("User", back_populates="bookings")
    sitter = db.relationship("SitterProfile", back_populates="bookings")

    def __repr__(self):
        return f"<Booking {self.id} ({self.status})>"
