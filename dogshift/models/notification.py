"""Notification models.

- Notification: in-app inbox row. Unique per (user_id, idempotency_key) so a
  retried dispatch never creates a second row.
- NotificationSendLog: the idempotency ledger. One row per
  (user_id, kind, entity_id) that has been notified; presence means
  "never send again". Rows are never deleted.
- NotificationPreference: per-user opt-out. No row means enabled.
"""

import uuid

from dogshift.extensions import db


class NotificationKind:
    NEW_MESSAGES = "newMessages"
    NEW_BOOKING_REQUEST = "newBookingRequest"
    BOOKING_CONFIRMED = "bookingConfirmed"
    PAYMENT_RECEIVED = "paymentReceived"
    BOOKING_REMINDER = "bookingReminder"
    BOOKING_CANCELLED = "bookingCancelled"
    BOOKING_REFUNDED = "bookingRefunded"
    BOOKING_REFUND_FAILED = "bookingRefundFailed"

    ALL = frozenset({
        NEW_MESSAGES,
        NEW_BOOKING_REQUEST,
        BOOKING_CONFIRMED,
        PAYMENT_RECEIVED,
        BOOKING_REMINDER,
        BOOKING_CANCELLED,
        BOOKING_REFUNDED,
        BOOKING_REFUND_FAILED,
    })


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "idempotency_key", name="uq_notification_user_idempotency"
        ),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    kind = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=True)
    url = db.Column(db.String(500), nullable=True)
    entity_id = db.Column(db.String(255), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, nullable=True
    )  # named metadata_ to avoid the declarative attribute clash
    idempotency_key = db.Column(db.String(255), nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="notifications")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.kind,
            "title": self.title,
            "body": self.body,
            "url": self.url,
            "entityId": self.entity_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "readAt": self.read_at.isoformat() if self.read_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.kind} for {self.user_id}>"


class NotificationSendLog(db.Model):
    __tablename__ = "notification_send_logs"
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "kind", "entity_id", name="uq_notification_send_log"
        ),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    kind = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(255), nullable=False)  # e.g. "<booking>:payment_received"
    sent_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<NotificationSendLog {self.kind} {self.entity_id} -> {self.user_id}>"


class NotificationPreference(db.Model):
    __tablename__ = "notification_preferences"
    __table_args__ = (
        db.UniqueConstraint("user_id", "kind", name="uq_notification_preference"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    kind = db.Column(db.String(50), nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<NotificationPreference {self.kind}={self.enabled}>"
