"""
Checkout: records a pending charge, then asks Paystack for a hosted
payment page. The charge is committed before Paystack is called so a
webhook that beats our response still finds it.
"""
import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from errors import (GatewayError, InvalidCoupon, InvalidQuantity, ReferenceGenerationFailed,
                    SoldOut, SubjectNotFound, ValidationError)
from models import (CHARGE_KINDS, FAILED, PENDING, VOTE, Charge, Coupon, Nominee,
                    TicketType, db)

logger = logging.getLogger(__name__)

# number of votes -> price in major currency units
VOTE_TIERS = {
    10: 50,
    20: 100,
    30: 150,
    100: 500,
    200: 1000,
    400: 2000,
}

MAX_TICKETS_PER_PURCHASE = 10
MAX_REFERENCE_ATTEMPTS = 5


def new_reference(kind):
    return f"{kind}-{uuid.uuid4().hex}"


def to_minor_units(amount):
    return int((Decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class CheckoutSession:
    reference: str
    checkout_url: str


class CheckoutInitiator:
    def __init__(self, config, gateway, reference_factory=new_reference):
        self.config = config
        self.gateway = gateway
        self.reference_factory = reference_factory

    def initiate(self, kind, subject_id, quantity, payer, coupon_code=None):
        """
        Creates a pending charge for `quantity` votes or tickets and returns
        the reference plus the hosted checkout URL.

        Raises InvalidQuantity, SubjectNotFound, SoldOut, InvalidCoupon,
        ReferenceGenerationFailed or GatewayError.
        """
        if kind not in CHARGE_KINDS:
            raise ValidationError(f"Unknown charge kind: {kind}")

        if kind == VOTE:
            fields = self._price_votes(subject_id, quantity)
        else:
            fields = self._price_tickets(subject_id, quantity, coupon_code)

        charge = self._persist_pending(kind, quantity, payer, fields)

        metadata = {
            "kind": kind,
            "subject_id": subject_id,
            "reference": charge.reference,
        }
        try:
            url = self.gateway.initialize_transaction(
                email=payer.email,
                amount=charge.amount_minor,
                reference=charge.reference,
                currency=charge.currency,
                callback_url=self.config.callback_url,
                metadata=metadata,
            )
        except GatewayError as exc:
            logger.error(f"Paystack initialization failed for {charge.reference}: {exc.message}")
            self._fail_pending(charge, 'gateway_initialization_failed')
            raise

        charge.authorization_url = url
        db.session.commit()
        logger.info(f"Checkout started: ref={charge.reference} kind={kind} subject={subject_id} "
                    f"qty={quantity} amount={charge.amount_minor} {charge.currency}")
        return CheckoutSession(reference=charge.reference, checkout_url=url)

    # 1) Pricing

    def _price_votes(self, nominee_id, quantity):
        if quantity not in VOTE_TIERS:
            allowed = ', '.join(f"{votes} ({price})" for votes, price in VOTE_TIERS.items())
            logger.warning(f"Rejected vote checkout with quantity {quantity}")
            raise InvalidQuantity(f"Invalid number of votes. Allowed options: {allowed}.")

        if db.session.get(Nominee, nominee_id) is None:
            logger.warning(f"Vote checkout for non-existent nominee {nominee_id}")
            raise SubjectNotFound("Nominee not found.")

        return {
            'nominee_id': nominee_id,
            'amount_minor': to_minor_units(VOTE_TIERS[quantity]),
        }

    def _price_tickets(self, ticket_type_id, quantity, coupon_code):
        if not 1 <= quantity <= MAX_TICKETS_PER_PURCHASE:
            raise InvalidQuantity(f"You can buy between 1 and {MAX_TICKETS_PER_PURCHASE} tickets at a time.")

        ticket_type = db.session.get(TicketType, ticket_type_id)
        if ticket_type is None:
            logger.warning(f"Ticket checkout for non-existent ticket type {ticket_type_id}")
            raise SubjectNotFound("Ticket type not found.")

        # Advisory only; the projector re-checks atomically when the charge completes.
        if ticket_type.tickets_sold + quantity > ticket_type.total_available:
            logger.warning(f"Ticket checkout for sold-out type {ticket_type.name} ({ticket_type_id}): "
                           f"{ticket_type.remaining} left, {quantity} requested")
            raise SoldOut(f"Only {max(ticket_type.remaining, 0)} ticket(s) left for {ticket_type.name}.")

        amount_minor = to_minor_units(ticket_type.price) * quantity
        fields = {'ticket_type_id': ticket_type_id, 'amount_minor': amount_minor}

        if coupon_code:
            coupon = self._valid_coupon(coupon_code, ticket_type_id)
            discount = self._discount(coupon, amount_minor)
            if discount >= amount_minor:
                raise InvalidCoupon("Coupon discount covers the whole purchase; it cannot be used here.")
            fields.update(coupon_id=coupon.id, discount_minor=discount, amount_minor=amount_minor - discount)

        return fields

    def _valid_coupon(self, code, ticket_type_id):
        coupon = Coupon.query.filter_by(code=code.upper()).first()
        if coupon is None or coupon.status != 'active':
            raise InvalidCoupon("Coupon code is not valid.")
        if coupon.expiry_date < dt.datetime.now():
            raise InvalidCoupon("Coupon has expired.")
        if coupon.max_uses is not None and coupon.uses_count >= coupon.max_uses:
            raise InvalidCoupon("Coupon has reached its usage limit.")
        if coupon.ticket_type_id is not None and coupon.ticket_type_id != ticket_type_id:
            raise InvalidCoupon("Coupon does not apply to this ticket type.")
        return coupon

    @staticmethod
    def _discount(coupon, amount_minor):
        if coupon.discount_type == 'percentage':
            return int((Decimal(amount_minor) * Decimal(coupon.value) / 100).quantize(
                Decimal('1'), rounding=ROUND_HALF_UP))
        return to_minor_units(coupon.value)

    # 2) Persistence

    def _persist_pending(self, kind, quantity, payer, fields):
        for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
            reference = self.reference_factory(kind)
            charge = Charge(
                reference=reference,
                kind=kind,
                quantity=quantity,
                currency=self.config.currency,
                status=PENDING,
                payer_name=payer.name,
                payer_email=payer.email,
                payer_phone=payer.phone,
                **fields
            )
            db.session.add(charge)
            try:
                db.session.commit()
                return charge
            except IntegrityError:
                db.session.rollback()
                # Only a taken reference is worth another attempt
                if Charge.query.filter_by(reference=reference).first() is None:
                    logger.exception(f"Could not store pending {kind} charge {reference}")
                    raise
                logger.warning(f"Reference collision on attempt {attempt} for {kind} charge; regenerating")

        logger.error(f"Gave up allocating a {kind} reference after {MAX_REFERENCE_ATTEMPTS} attempts")
        raise ReferenceGenerationFailed()

    def _fail_pending(self, charge, reason):
        db.session.execute(
            update(Charge)
            .where(Charge.id == charge.id, Charge.status == PENDING)
            .values(status=FAILED, failure_reason=reason, resolved_via='checkout', resolved_at=dt.datetime.now())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
