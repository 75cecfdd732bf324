import csv
import io
import logging

from models import COMPLETED, CHARGE_STATUSES, TICKET, VOTE, Category, Charge, Nominee, TicketType, db

logger = logging.getLogger(__name__)

VOTE_EXPORT_HEADER = [
    'Nominee Name', 'Nominee Category', 'Voter Name', 'Voter Email', 'Voter Phone',
    'Number of Votes', 'Amount', 'Currency', 'Payment Status', 'Reference', 'Created At',
]


def filter_charges(charge_filter):
    """Builds the charge query behind the admin listing and the CSV export."""
    query = Charge.query

    if charge_filter.kind:
        query = query.filter(Charge.kind == charge_filter.kind)
    if charge_filter.status:
        query = query.filter(Charge.status == charge_filter.status)
    if charge_filter.nominee_id:
        query = query.filter(Charge.nominee_id == charge_filter.nominee_id)
    if charge_filter.ticket_type_id:
        query = query.filter(Charge.ticket_type_id == charge_filter.ticket_type_id)
    if charge_filter.category_id:
        query = query.join(Nominee, Charge.nominee_id == Nominee.id) \
            .filter(Nominee.category_id == charge_filter.category_id)
    if charge_filter.needs_review is not None:
        query = query.filter(Charge.needs_review == charge_filter.needs_review)
    if charge_filter.date_from:
        query = query.filter(Charge.created_at >= charge_filter.date_from)
    if charge_filter.date_to:
        query = query.filter(Charge.created_at <= charge_filter.date_to)

    return query.order_by(Charge.created_at.desc(), Charge.id.desc())


def export_votes_csv(query):
    """Renders vote charges as CSV text. Amounts are in major currency units."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(VOTE_EXPORT_HEADER)

    rows = 0
    for charge in query.filter(Charge.kind == VOTE):
        nominee = charge.nominee
        writer.writerow([
            nominee.name if nominee else 'N/A',
            nominee.category.name if nominee and nominee.category else 'No Category',
            charge.payer_name,
            charge.payer_email,
            charge.payer_phone,
            charge.quantity,
            f"{charge.amount_minor / 100:.2f}",
            charge.currency,
            charge.status,
            charge.reference,
            charge.created_at.isoformat(sep=' ', timespec='seconds'),
        ])
        rows += 1

    logger.info(f"Exported {rows} vote charge(s) to CSV")
    return buffer.getvalue()


def dashboard_summary():
    revenue_minor = db.session.query(db.func.sum(Charge.amount_minor)) \
        .filter(Charge.status == COMPLETED).scalar() or 0
    vote_revenue_minor = db.session.query(db.func.sum(Charge.amount_minor)) \
        .filter(Charge.status == COMPLETED, Charge.kind == VOTE).scalar() or 0
    total_votes = db.session.query(db.func.sum(Nominee.vote_count)).scalar() or 0
    total_tickets_sold = db.session.query(db.func.sum(TicketType.tickets_sold)).scalar() or 0

    status_counts = dict.fromkeys(CHARGE_STATUSES, 0)
    for status, count in db.session.query(Charge.status, db.func.count(Charge.id)).group_by(Charge.status):
        status_counts[status] = count

    standings = db.session.query(Nominee.id, Nominee.name, Nominee.vote_count,
                                 Category.name.label('category_name')) \
        .join(Category) \
        .order_by(Category.name, Nominee.vote_count.desc()).all()

    ticket_types = TicketType.query.order_by(TicketType.name).all()

    return {
        'total_revenue': revenue_minor / 100,
        'vote_revenue': vote_revenue_minor / 100,
        'ticket_revenue': (revenue_minor - vote_revenue_minor) / 100,
        'total_votes': total_votes,
        'total_tickets_sold': total_tickets_sold,
        'charges_by_status': status_counts,
        'charges_needing_review': Charge.query.filter_by(needs_review=True).count(),
        'ticket_charges': Charge.query.filter_by(kind=TICKET).count(),
        'vote_charges': Charge.query.filter_by(kind=VOTE).count(),
        'nominees': [
            {'id': n.id, 'name': n.name, 'category_name': n.category_name, 'vote_count': n.vote_count}
            for n in standings
        ],
        'ticket_types': [
            {'id': t.id, 'name': t.name, 'tickets_sold': t.tickets_sold,
             'total_available': t.total_available, 'remaining': t.remaining}
            for t in ticket_types
        ],
    }
