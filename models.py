import datetime as dt

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Charge kinds
VOTE = 'vote'
TICKET = 'ticket'
CHARGE_KINDS = (VOTE, TICKET)

# Charge statuses. COMPLETED and FAILED are terminal.
PENDING = 'pending'
COMPLETED = 'completed'
FAILED = 'failed'
CHARGE_STATUSES = (PENDING, COMPLETED, FAILED)

# Ticket instance statuses
TICKET_UNUSED = 'unused'
TICKET_USED = 'used'
TICKET_CANCELLED = 'cancelled'


# --- Database Models ---
class Category(db.Model):
    """
    A nomination category (e.g., 'Artist of the Year').
    """
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    nominees = db.relationship('Nominee', backref='category', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f'<Category {self.name}>'


class Nominee(db.Model):
    """
    A nominee inside a category. vote_count is only ever changed by the
    AggregateProjector when a vote charge completes.
    """
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=False)
    vote_count = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (db.CheckConstraint('vote_count >= 0', name='ck_nominee_vote_count'),)

    def __repr__(self):
        return f'<Nominee {self.name} in Category {self.category.name if self.category else "N/A"}>'


class TicketType(db.Model):
    """
    A sellable ticket type. tickets_sold never exceeds total_available.
    """
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    total_available = db.Column(db.Integer, nullable=False)
    tickets_sold = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.now, nullable=False)

    __table_args__ = (
        db.CheckConstraint('tickets_sold >= 0', name='ck_ticket_type_sold'),
        db.CheckConstraint('tickets_sold <= total_available', name='ck_ticket_type_capacity'),
    )

    @property
    def remaining(self):
        return self.total_available - self.tickets_sold

    def __repr__(self):
        return f'<TicketType {self.name} {self.tickets_sold}/{self.total_available}>'


class Coupon(db.Model):
    """
    Discount code for ticket purchases. uses_count is bumped when a charge
    that used the coupon completes, not when checkout starts.
    """
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    discount_type = db.Column(db.String(20), nullable=False)  # percentage | fixed
    value = db.Column(db.Numeric(10, 2), nullable=False)
    max_uses = db.Column(db.Integer, nullable=True)  # None means unlimited
    uses_count = db.Column(db.Integer, default=0, nullable=False)
    expiry_date = db.Column(db.DateTime, nullable=False)
    ticket_type_id = db.Column(db.Integer, db.ForeignKey('ticket_type.id'), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), default='active', nullable=False)  # active | inactive | expired
    created_at = db.Column(db.DateTime, default=dt.datetime.now, nullable=False)

    def __repr__(self):
        return f'<Coupon {self.code} {self.discount_type}:{self.value}>'


class Charge(db.Model):
    """
    A payable vote or ticket purchase tracked through pending -> completed|failed.
    `reference` is the gateway correlation key and never changes once written.
    """
    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(100), unique=True, nullable=False, index=True)
    kind = db.Column(db.String(10), nullable=False)
    nominee_id = db.Column(db.Integer, db.ForeignKey('nominee.id'), nullable=True)
    ticket_type_id = db.Column(db.Integer, db.ForeignKey('ticket_type.id'), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    amount_minor = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    status = db.Column(db.String(20), default=PENDING, nullable=False, index=True)

    payer_name = db.Column(db.String(100), nullable=False)
    payer_email = db.Column(db.String(120), nullable=False)
    payer_phone = db.Column(db.String(30), nullable=False)

    coupon_id = db.Column(db.Integer, db.ForeignKey('coupon.id'), nullable=True)
    discount_minor = db.Column(db.Integer, default=0, nullable=False)

    authorization_url = db.Column(db.String(500), nullable=True)
    failure_reason = db.Column(db.String(100), nullable=True)
    resolved_via = db.Column(db.String(20), nullable=True)  # webhook | callback | checkout
    resolved_at = db.Column(db.DateTime, nullable=True)

    # Set when the charge completed but the aggregates could not be credited
    needs_review = db.Column(db.Boolean, default=False, nullable=False)
    review_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=dt.datetime.now, nullable=False, index=True)

    nominee = db.relationship('Nominee', lazy=True)
    ticket_type = db.relationship('TicketType', lazy=True)
    coupon = db.relationship('Coupon', lazy=True)
    tickets = db.relationship('Ticket', backref='charge', lazy=True, order_by='Ticket.id')

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_charge_quantity'),
        db.CheckConstraint('amount_minor > 0', name='ck_charge_amount'),
    )

    @property
    def subject_id(self):
        return self.nominee_id if self.kind == VOTE else self.ticket_type_id

    @property
    def is_terminal(self):
        return self.status != PENDING

    def to_dict(self):
        return {
            'reference': self.reference,
            'kind': self.kind,
            'subject_id': self.subject_id,
            'quantity': self.quantity,
            'amount_minor': self.amount_minor,
            'discount_minor': self.discount_minor,
            'currency': self.currency,
            'status': self.status,
            'payer_name': self.payer_name,
            'payer_email': self.payer_email,
            'payer_phone': self.payer_phone,
            'failure_reason': self.failure_reason,
            'resolved_via': self.resolved_via,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'needs_review': self.needs_review,
            'review_reason': self.review_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Charge {self.reference} {self.kind} x{self.quantity} - {self.status}>'


class Ticket(db.Model):
    """
    A single issued ticket. Issued only once its charge has completed.
    """
    id = db.Column(db.Integer, primary_key=True)
    ticket_type_id = db.Column(db.Integer, db.ForeignKey('ticket_type.id'), nullable=False)
    charge_reference = db.Column(db.String(100), db.ForeignKey('charge.reference'), nullable=False, index=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    purchaser_name = db.Column(db.String(100), nullable=False)
    purchaser_email = db.Column(db.String(120), nullable=False)
    purchaser_phone = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), default=TICKET_UNUSED, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=dt.datetime.now, nullable=False)

    ticket_type = db.relationship('TicketType', lazy=True)

    def to_dict(self):
        return {
            'code': self.code,
            'ticket_type_id': self.ticket_type_id,
            'ticket_type': self.ticket_type.name if self.ticket_type else None,
            'purchaser_name': self.purchaser_name,
            'status': self.status,
            'used_at': self.used_at.isoformat() if self.used_at else None,
        }

    def __repr__(self):
        return f'<Ticket {self.code} ({self.status})>'
# --- End Database Models ---
