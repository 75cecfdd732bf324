# tests/conftest.py
import datetime as dt
import json
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from config import PaymentConfig
from errors import GatewayError
from models import Category, Charge, Coupon, Nominee, TicketType, db
from paystack import sign_payload

WEBHOOK_SECRET = 'test_paystack_secret_key'


def make_config(**overrides):
    config = {
        'TESTING': True,
        'SECRET_KEY': 'test_secret_key',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYSTACK_SECRET_KEY': WEBHOOK_SECRET,
        'PAYSTACK_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'PAYSTACK_API_BASE_URL': 'http://test-paystack-api.com',
        'PAYSTACK_CALLBACK_URL': 'http://test.com/callback',
        'PAYSTACK_CURRENCY': 'KES',
        'PAYSTACK_TIMEOUT': 2,
        'FRONTEND_URL': None,
        'ALLOWED_ORIGINS': [],
        'ADMIN_USERNAME': 'admin',
        'ADMIN_PASSWORD_HASH': generate_password_hash('adminpass'),
        'ADMIN_TOKEN_HOURS': 1,
    }
    config.update(overrides)
    return config


class FakeGateway:
    """Stands in for PaystackClient; records calls and replays canned answers."""

    def __init__(self):
        self.initialized = []
        self.verified = []
        self.init_error = None
        self.verify_error = None
        self.verify_data = {}
        self.on_initialize = None

    def initialize_transaction(self, email, amount, reference, currency, callback_url=None, metadata=None):
        self.initialized.append({
            'email': email, 'amount': amount, 'reference': reference,
            'currency': currency, 'callback_url': callback_url, 'metadata': metadata,
        })
        if self.on_initialize:
            self.on_initialize(reference)
        if self.init_error:
            raise self.init_error
        return f"https://checkout.paystack.com/{reference}"

    def verify_transaction(self, reference):
        self.verified.append(reference)
        if self.verify_error:
            raise self.verify_error
        if isinstance(self.verify_data, dict) and reference in self.verify_data:
            return self.verify_data[reference]
        raise GatewayError("Transaction reference not found")


@pytest.fixture(scope='function')
def app():
    app = create_app(make_config())
    app.extensions['paystack'] = FakeGateway()
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    return app.extensions['paystack']


@pytest.fixture
def payment_config(app):
    return PaymentConfig.from_mapping(app.config)


@pytest.fixture
def nominee(app):
    category = Category(name='Artist of the Year', description='Best overall artist')
    db.session.add(category)
    db.session.commit()
    nominee = Nominee(name='Jane Doe', category_id=category.id, vote_count=5)
    db.session.add(nominee)
    db.session.commit()
    return nominee


@pytest.fixture
def ticket_type(app):
    ticket_type = TicketType(name='VIP', price=Decimal('1500.00'), total_available=5, tickets_sold=0)
    db.session.add(ticket_type)
    db.session.commit()
    return ticket_type


@pytest.fixture
def coupon(ticket_type):
    coupon = Coupon(code='EARLYBIRD', discount_type='percentage', value=Decimal('10'),
                    max_uses=1, expiry_date=dt.datetime.now() + dt.timedelta(days=30))
    db.session.add(coupon)
    db.session.commit()
    return coupon


def add_charge(kind, subject, quantity, amount_minor, reference, status='pending', **extra):
    extra.setdefault('payer_name', 'Ama Mensah')
    extra.setdefault('payer_email', 'ama@example.com')
    extra.setdefault('payer_phone', '+254700000001')
    charge = Charge(
        reference=reference,
        kind=kind,
        nominee_id=subject.id if kind == 'vote' else None,
        ticket_type_id=subject.id if kind == 'ticket' else None,
        quantity=quantity,
        amount_minor=amount_minor,
        currency='KES',
        status=status,
        **extra
    )
    db.session.add(charge)
    db.session.commit()
    return charge


def webhook_body(event, reference, amount):
    return json.dumps({'event': event, 'data': {'reference': reference, 'amount': amount}}).encode('utf-8')


def post_webhook(client, body, secret=WEBHOOK_SECRET, signature=None):
    headers = {'Content-Type': 'application/json',
               'x-paystack-signature': signature if signature is not None else sign_payload(secret, body)}
    return client.post('/api/payment/paystack-webhook', data=body, headers=headers)
