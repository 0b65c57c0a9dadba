"""Typed payment events.

Stripe delivers loosely-typed JSON. parse_event() turns a verified event into
one of a closed set of frozen dataclasses, one per kind we act on. Anything
else parses to None and is acknowledged as a no-op by the ingress.

Empty strings in the payload are normalised to None; the booking store never
writes None over a stored value.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional, Tuple


class MalformedEventError(ValueError):
    """A known event type is missing a field we can't do without."""


@dataclass(frozen=True)
class PaymentEvent:
    event_id: str
    livemode: bool

    kind: ClassVar[str] = ""


@dataclass(frozen=True)
class CheckoutCompleted(PaymentEvent):
    session_id: str
    booking_id: Optional[str] = None
    payment_intent_id: Optional[str] = None

    kind: ClassVar[str] = "checkout_completed"


@dataclass(frozen=True)
class PaymentSucceeded(PaymentEvent):
    payment_intent_id: str
    booking_id: Optional[str] = None
    transfer_id: Optional[str] = None

    kind: ClassVar[str] = "payment_succeeded"


@dataclass(frozen=True)
class ChargeSucceeded(PaymentEvent):
    charge_id: str
    booking_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    transfer_id: Optional[str] = None

    kind: ClassVar[str] = "charge_succeeded"


@dataclass(frozen=True)
class PaymentFailed(PaymentEvent):
    payment_intent_id: str
    booking_id: Optional[str] = None
    failure_message: Optional[str] = None

    kind: ClassVar[str] = "payment_failed"


@dataclass(frozen=True)
class AccountUpdated(PaymentEvent):
    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    disabled_reason: Optional[str] = None
    currently_due: Tuple[str, ...] = field(default_factory=tuple)

    kind: ClassVar[str] = "account_updated"


# Events that move a booking to PAID.
PAYMENT_SUCCESS_EVENTS = (CheckoutCompleted, PaymentSucceeded, ChargeSucceeded)


# ──────────────────────────────────────────────
# Parsing
# ──────────────────────────────────────────────

def _str_or_none(value):
    """Return a stripped non-empty string, or None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _id_of(value):
    """Stripe fields may be an ID string or an expanded object with an id."""
    if isinstance(value, dict):
        return _str_or_none(value.get("id"))
    return _str_or_none(value)


def _object_or_empty(value, event_type, name):
    """A nested object that may be absent, but must be an object if present."""
    if value is None or value == "":
        return {}
    if not isinstance(value, dict):
        raise MalformedEventError(f"{event_type} has a non-object {name}")
    return value


def _booking_id_from_metadata(obj, event_type):
    metadata = _object_or_empty(obj.get("metadata"), event_type, "metadata")
    return (
        _str_or_none(metadata.get("bookingId"))
        or _str_or_none(metadata.get("booking_id"))
    )


def _require(value, event_type, name):
    if not value:
        raise MalformedEventError(f"{event_type} is missing {name}")
    return value


def _transfer_from_charge(charge):
    if not isinstance(charge, dict):
        return None
    return _id_of(charge.get("transfer"))


def _parse_checkout_completed(base, obj, event_type):
    return CheckoutCompleted(
        **base,
        session_id=_require(_id_of(obj.get("id")), event_type, "session id"),
        booking_id=_booking_id_from_metadata(obj, event_type),
        payment_intent_id=_id_of(obj.get("payment_intent")),
    )


def _parse_payment_succeeded(base, obj, event_type):
    # latest_charge is only an object when the event was expanded.
    return PaymentSucceeded(
        **base,
        payment_intent_id=_require(_id_of(obj.get("id")), event_type, "payment intent id"),
        booking_id=_booking_id_from_metadata(obj, event_type),
        transfer_id=_transfer_from_charge(obj.get("latest_charge")),
    )


def _parse_charge_succeeded(base, obj, event_type):
    return ChargeSucceeded(
        **base,
        charge_id=_require(_id_of(obj.get("id")), event_type, "charge id"),
        booking_id=_booking_id_from_metadata(obj, event_type),
        payment_intent_id=_id_of(obj.get("payment_intent")),
        transfer_id=_id_of(obj.get("transfer")),
    )


def _parse_payment_failed(base, obj, event_type):
    last_error = _object_or_empty(obj.get("last_payment_error"), event_type, "last_payment_error")
    return PaymentFailed(
        **base,
        payment_intent_id=_require(_id_of(obj.get("id")), event_type, "payment intent id"),
        booking_id=_booking_id_from_metadata(obj, event_type),
        failure_message=_str_or_none(last_error.get("message")),
    )


def _parse_account_updated(base, obj, event_type):
    requirements = _object_or_empty(obj.get("requirements"), event_type, "requirements")
    currently_due = requirements.get("currently_due") or []
    if not isinstance(currently_due, list):
        raise MalformedEventError(f"{event_type} has a non-list requirements.currently_due")
    return AccountUpdated(
        **base,
        account_id=_require(_id_of(obj.get("id")), event_type, "account id"),
        charges_enabled=bool(obj.get("charges_enabled")),
        payouts_enabled=bool(obj.get("payouts_enabled")),
        disabled_reason=_str_or_none(requirements.get("disabled_reason")),
        currently_due=tuple(str(item) for item in currently_due),
    )


_PARSERS = {
    "checkout.session.completed": _parse_checkout_completed,
    "payment_intent.succeeded": _parse_payment_succeeded,
    "charge.succeeded": _parse_charge_succeeded,
    "payment_intent.payment_failed": _parse_payment_failed,
    "account.updated": _parse_account_updated,
}

HANDLED_EVENT_TYPES = frozenset(_PARSERS)


def parse_event(event):
    """Parse a verified Stripe event dict into a PaymentEvent.

    Returns None for event types we don't handle.
    Raises MalformedEventError if a handled type lacks its object id or
    carries a nested field of the wrong shape.
    """
    event_type = event.get("type")
    parser = _PARSERS.get(event_type) if isinstance(event_type, str) else None
    if parser is None:
        return None

    obj = _object_or_empty(event.get("data"), event_type, "data").get("object")
    if not isinstance(obj, dict):
        raise MalformedEventError(f"{event_type} has no data.object")

    base = {
        "event_id": _str_or_none(event.get("id")) or "",
        "livemode": bool(event.get("livemode", False)),
    }
    return parser(base, obj, event_type)
