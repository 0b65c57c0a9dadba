"""Sitter profile model.

Carries the sitter's Stripe Connect payout account. The account status is
recomputed from Stripe's capability flags on every account.updated webhook
(see connect_service.compute_account_status) and is never set by hand.
"""

import uuid

from dogshift.extensions import db


class SitterProfile(db.Model):
    __tablename__ = "sitter_profiles"

    # -- Connected account statuses (computed, see connect_service) --
    ACCOUNT_STATUSES = ["PENDING", "ENABLED", "RESTRICTED"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=False
    )
    display_name = db.Column(db.String(255), nullable=True)

    # --- Stripe Connect ---
    stripe_account_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # e.g. "acct_1Abc..."
    stripe_account_status = db.Column(
        db.String(20), nullable=True
    )  # PENDING | ENABLED | RESTRICTED
    stripe_onboarding_completed_at = db.Column(
        db.DateTime(timezone=True), nullable=True
    )

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="sitter_profile")
    bookings = db.relationship(
        "Booking", back_populates="sitter", lazy="dynamic"
    )

    def __repr__(self):
        return f"<SitterProfile {self.display_name} ({self.stripe_account_status})>"
