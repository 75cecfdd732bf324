"""
Typed request objects. Raw JSON / query strings are checked here, before
anything reaches checkout or reconciliation.
"""
import datetime as dt
import json
import logging
import re
from dataclasses import dataclass

from errors import ValidationError
from models import CHARGE_KINDS, CHARGE_STATUSES

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PHONE_RE = re.compile(r'^\+?[0-9 ()-]{7,20}$')

SUCCESS_EVENTS = {'charge.success'}
FAILURE_EVENTS = {'charge.failed'}


def _positive_int(value, field):
    # bool is an int subclass; "true" is not a count
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer.")
    if number <= 0 or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{field} must be a positive integer.")
    return number


def _text(data, field, max_len):
    value = data.get(field)
    if not value or not isinstance(value, str) or len(value.strip()) > max_len:
        raise ValidationError(f"{field} is required and must be at most {max_len} characters.")
    return value.strip()


@dataclass(frozen=True)
class PayerInfo:
    name: str
    email: str
    phone: str

    @classmethod
    def from_json(cls, data, prefix):
        name = _text(data, f'{prefix}_name', 100)
        email = _text(data, f'{prefix}_email', 120).lower()
        phone = _text(data, f'{prefix}_phone', 30)
        if not EMAIL_RE.match(email):
            logger.warning(f"Invalid {prefix} email: {email}")
            raise ValidationError("Invalid email format.")
        if not PHONE_RE.match(phone):
            logger.warning(f"Invalid {prefix} phone: {phone}")
            raise ValidationError("Invalid phone number.")
        return cls(name=name, email=email, phone=phone)


@dataclass(frozen=True)
class VoteCheckoutRequest:
    nominee_id: int
    number_of_votes: int
    payer: PayerInfo

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be valid JSON.")
        return cls(
            nominee_id=_positive_int(data.get('nominee_id'), 'nominee_id'),
            number_of_votes=_positive_int(data.get('number_of_votes'), 'number_of_votes'),
            payer=PayerInfo.from_json(data, 'voter'),
        )


@dataclass(frozen=True)
class TicketCheckoutRequest:
    ticket_type_id: int
    quantity: int
    payer: PayerInfo
    coupon_code: str | None = None

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be valid JSON.")
        coupon_code = data.get('coupon_code')
        if coupon_code is not None:
            if not isinstance(coupon_code, str) or len(coupon_code.strip()) > 50:
                raise ValidationError("coupon_code must be a string up to 50 characters.")
            coupon_code = coupon_code.strip().upper() or None
        return cls(
            ticket_type_id=_positive_int(data.get('ticket_type_id'), 'ticket_type_id'),
            quantity=_positive_int(data.get('quantity', 1), 'quantity'),
            payer=PayerInfo.from_json(data, 'purchaser'),
            coupon_code=coupon_code,
        )


@dataclass(frozen=True)
class WebhookEvent:
    """A Paystack push notification, parsed after its signature was checked."""
    event: str
    reference: str | None
    amount: int | None
    metadata: dict | None = None

    @property
    def is_success(self):
        return self.event in SUCCESS_EVENTS

    @property
    def is_failure(self):
        return self.event in FAILURE_EVENTS

    @classmethod
    def from_body(cls, raw_body):
        try:
            payload = json.loads(raw_body)
        except (TypeError, ValueError):
            raise ValidationError("Webhook body is not valid JSON.")
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object.")

        data = payload.get('data') or {}
        if not isinstance(data, dict):
            raise ValidationError("Webhook data must be a JSON object.")

        reference = data.get('reference')
        if reference is not None and not isinstance(reference, str):
            reference = str(reference)
        amount = data.get('amount')
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            amount = None
        metadata = data.get('metadata') if isinstance(data.get('metadata'), dict) else None

        return cls(event=str(payload.get('event') or ''), reference=reference,
                   amount=int(amount) if amount is not None else None, metadata=metadata)


def _parse_date(value, field, end_of_day=False):
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD).")
    if end_of_day and len(value) == 10:
        parsed = parsed + dt.timedelta(days=1) - dt.timedelta(microseconds=1)
    return parsed


@dataclass(frozen=True)
class ChargeFilter:
    kind: str | None = None
    status: str | None = None
    nominee_id: int | None = None
    ticket_type_id: int | None = None
    category_id: int | None = None
    needs_review: bool | None = None
    date_from: dt.datetime | None = None
    date_to: dt.datetime | None = None

    @classmethod
    def from_args(cls, args):
        kind = args.get('kind') or None
        if kind is not None and kind not in CHARGE_KINDS:
            raise ValidationError(f"kind must be one of {', '.join(CHARGE_KINDS)}.")
        status = args.get('status') or None
        if status is not None:
            status = status.lower()
            if status not in CHARGE_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(CHARGE_STATUSES)}.")

        needs_review = args.get('needs_review')
        if needs_review is not None:
            needs_review = needs_review.lower() in ('1', 'true', 'yes')

        def optional_id(field):
            raw = args.get(field)
            return _positive_int(raw, field) if raw else None

        return cls(
            kind=kind,
            status=status,
            nominee_id=optional_id('nominee_id'),
            ticket_type_id=optional_id('ticket_type_id'),
            category_id=optional_id('category_id'),
            needs_review=needs_review,
            date_from=_parse_date(args.get('date_from'), 'date_from'),
            date_to=_parse_date(args.get('date_to'), 'date_to', end_of_day=True),
        )
