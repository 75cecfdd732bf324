import logging
import uuid

from sqlalchemy import or_, update

from errors import CapacityExceeded, SubjectMissing
from models import TICKET, TICKET_UNUSED, VOTE, Coupon, Nominee, Ticket, TicketType, db

logger = logging.getLogger(__name__)

TICKET_CODE_PREFIX = 'TICKET-'
TICKET_CODE_LENGTH = 10


def new_ticket_code():
    return f"{TICKET_CODE_PREFIX}{uuid.uuid4().hex[:TICKET_CODE_LENGTH].upper()}"


class AggregateProjector:
    """
    Applies the counter side effects of a completed charge.

    Runs inside the caller's transaction and never commits: the status flip
    and the increments land together or not at all. Every increment is a
    single conditional UPDATE so concurrent completions cannot lose updates.
    """

    def __init__(self, code_factory=new_ticket_code):
        self.code_factory = code_factory

    def credit(self, charge):
        """Raises CapacityExceeded or SubjectMissing when nothing was credited."""
        if charge.kind == VOTE:
            self._credit_votes(charge.nominee_id, charge.quantity)
        elif charge.kind == TICKET:
            self._credit_tickets(charge.ticket_type_id, charge.quantity)
            self._issue_tickets(charge)
        else:
            raise ValueError(f"Unknown charge kind: {charge.kind}")

    def _credit_votes(self, nominee_id, quantity):
        result = db.session.execute(
            update(Nominee)
            .where(Nominee.id == nominee_id)
            .values(vote_count=Nominee.vote_count + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SubjectMissing(VOTE, nominee_id)
        logger.info(f"Credited {quantity} votes to nominee {nominee_id}")

    def _credit_tickets(self, ticket_type_id, quantity):
        result = db.session.execute(
            update(TicketType)
            .where(TicketType.id == ticket_type_id,
                   TicketType.tickets_sold + quantity <= TicketType.total_available)
            .values(tickets_sold=TicketType.tickets_sold + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info(f"Credited {quantity} sold ticket(s) to ticket type {ticket_type_id}")
            return
        if db.session.get(TicketType, ticket_type_id) is None:
            raise SubjectMissing(TICKET, ticket_type_id)
        raise CapacityExceeded(ticket_type_id, quantity)

    def _issue_tickets(self, charge):
        codes = set()
        while len(codes) < charge.quantity:
            code = self.code_factory()
            if code in codes or Ticket.query.filter_by(code=code).first() is not None:
                logger.warning(f"Ticket code collision on {code}; regenerating")
                continue
            codes.add(code)

        for code in sorted(codes):
            db.session.add(Ticket(
                ticket_type_id=charge.ticket_type_id,
                charge_reference=charge.reference,
                code=code,
                purchaser_name=charge.payer_name,
                purchaser_email=charge.payer_email,
                purchaser_phone=charge.payer_phone,
                status=TICKET_UNUSED,
            ))
        db.session.flush()

    def redeem_coupon(self, coupon_id):
        """Counts one use of a coupon. Returns False if it was already used up."""
        result = db.session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id,
                   or_(Coupon.max_uses.is_(None), Coupon.uses_count < Coupon.max_uses))
            .values(uses_count=Coupon.uses_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
