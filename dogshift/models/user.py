"""User model.

A marketplace participant (dog owner and/or sitter). Authentication lives
with the identity provider; Flask-Login only restores the user from the
session via UserMixin.
"""

import uuid

from flask_login import UserMixin

from dogshift.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255))
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    sitter_profile = db.relationship(
        "SitterProfile", back_populates="user", uselist=False
    )
    bookings = db.relationship(
        "Booking", back_populates="owner", lazy="dynamic"
    )
    notifications = db.relationship(
        "Notification", back_populates="user", lazy="dynamic"
    )

    def __repr__(self):
        return f"<User {self.email}>"
