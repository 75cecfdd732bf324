# tests/test_concurrency.py
#
# Runs against a file-backed SQLite database so each thread gets its own
# connection and session, like separate request handlers would.
import threading
from decimal import Decimal

import pytest

from app import create_app
from config import PaymentConfig
from models import Charge, Ticket, TicketType, db
from reconciliation import ReconciliationEngine

from conftest import FakeGateway, make_config

WORKERS = 50


@pytest.fixture
def file_app(tmp_path):
    app = create_app(make_config(
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'ledger.db'}",
        SQLALCHEMY_ENGINE_OPTIONS={'connect_args': {'timeout': 30}},
    ))
    app.extensions['paystack'] = FakeGateway()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def seed(app, capacity, references, quantity=1):
    with app.app_context():
        ticket_type = TicketType(name='Regular', price=Decimal('500.00'), total_available=capacity)
        db.session.add(ticket_type)
        db.session.commit()
        for reference in references:
            db.session.add(Charge(reference=reference, kind='ticket', ticket_type_id=ticket_type.id,
                                  quantity=quantity, amount_minor=50000 * quantity, currency='KES',
                                  payer_name='Kofi', payer_email='kofi@example.com', payer_phone='0700000002'))
        db.session.commit()
        return ticket_type.id


def run_concurrently(app, references):
    results, errors = [], []
    lock = threading.Lock()
    start = threading.Event()

    def worker(reference):
        start.wait()
        with app.app_context():
            engine = ReconciliationEngine(PaymentConfig.from_mapping(app.config), app.extensions['paystack'])
            try:
                resolution = engine.resolve(reference, True, channel='webhook')
            except Exception as exc:
                with lock:
                    errors.append(exc)
                return
            finally:
                db.session.remove()
        with lock:
            results.append(resolution)

    threads = [threading.Thread(target=worker, args=(ref,)) for ref in references]
    for thread in threads:
        thread.start()
    start.set()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    return results


def test_same_charge_resolved_by_many_handlers_applies_once(file_app):
    ticket_type_id = seed(file_app, capacity=1, references=['ticket-race'])

    results = run_concurrently(file_app, ['ticket-race'] * WORKERS)

    assert len(results) == WORKERS
    assert sum(1 for r in results if r.applied) == 1
    assert all(r.status == 'completed' for r in results)
    with file_app.app_context():
        assert db.session.get(TicketType, ticket_type_id).tickets_sold == 1
        assert Ticket.query.count() == 1
        assert Charge.query.filter_by(reference='ticket-race').one().needs_review is False


def test_competing_charges_never_oversell(file_app):
    references = [f'ticket-{i}' for i in range(12)]
    ticket_type_id = seed(file_app, capacity=5, references=references)

    results = run_concurrently(file_app, references)

    assert all(r.applied and r.status == 'completed' for r in results)
    assert sum(1 for r in results if not r.flagged) == 5
    with file_app.app_context():
        assert db.session.get(TicketType, ticket_type_id).tickets_sold == 5
        assert Charge.query.filter_by(needs_review=True).count() == 7
        assert Ticket.query.count() == 5
