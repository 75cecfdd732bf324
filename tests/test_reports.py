# tests/test_reports.py
import csv
import datetime as dt
import io

import pytest

from models import Charge, Nominee, db

from conftest import add_charge


@pytest.fixture
def admin_headers(client):
    token = client.post('/api/admin/login', json={'username': 'admin', 'password': 'adminpass'}).json['token']
    return {'x-access-token': token}


@pytest.fixture
def ledger(nominee, ticket_type):
    add_charge('vote', nominee, 10, 5000, 'vote-1', status='completed')
    add_charge('vote', nominee, 20, 10000, 'vote-2', status='failed')
    add_charge('vote', nominee, 30, 15000, 'vote-3')
    add_charge('ticket', ticket_type, 1, 150000, 'ticket-1', status='completed',
               needs_review=True, review_reason='capacity_exceeded')
    old = Charge.query.filter_by(reference='vote-1').one()
    old.created_at = dt.datetime(2024, 1, 15, 12, 0)
    db.session.commit()


def test_list_charges_filters_by_status_and_kind(client, admin_headers, ledger):
    response = client.get('/api/admin/charges?kind=vote&status=completed', headers=admin_headers)
    assert response.status_code == 200
    assert [c['reference'] for c in response.json['charges']] == ['vote-1']
    assert response.json['total'] == 1


def test_list_charges_flagged_only(client, admin_headers, ledger):
    response = client.get('/api/admin/charges?needs_review=true', headers=admin_headers)
    assert [c['reference'] for c in response.json['charges']] == ['ticket-1']
    assert response.json['charges'][0]['review_reason'] == 'capacity_exceeded'


def test_list_charges_by_date_range(client, admin_headers, ledger):
    response = client.get('/api/admin/charges?date_from=2024-01-01&date_to=2024-01-31', headers=admin_headers)
    assert [c['reference'] for c in response.json['charges']] == ['vote-1']


def test_list_charges_by_nominee_and_category(client, admin_headers, ledger, nominee):
    by_nominee = client.get(f'/api/admin/charges?nominee_id={nominee.id}', headers=admin_headers)
    assert by_nominee.json['total'] == 3
    by_category = client.get(f'/api/admin/charges?category_id={nominee.category_id}', headers=admin_headers)
    assert by_category.json['total'] == 3


def test_list_charges_paginates(client, admin_headers, ledger):
    response = client.get('/api/admin/charges?per_page=2&page=2', headers=admin_headers)
    assert response.json['total'] == 4
    assert response.json['total_pages'] == 2
    assert len(response.json['charges']) == 2


def test_list_charges_rejects_bad_filters(client, admin_headers):
    assert client.get('/api/admin/charges?status=refunded', headers=admin_headers).status_code == 400
    assert client.get('/api/admin/charges?date_from=yesterday', headers=admin_headers).status_code == 400


def test_vote_export_csv(client, admin_headers, ledger):
    response = client.get('/api/admin/votes/export', headers=admin_headers)

    assert response.status_code == 200
    assert response.mimetype == 'text/csv'
    assert 'attachment; filename="votes_export_' in response.headers['Content-Disposition']

    rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
    assert rows[0][:3] == ['Nominee Name', 'Nominee Category', 'Voter Name']
    assert len(rows) == 4
    first = next(row for row in rows[1:] if row[9] == 'vote-1')
    assert first[:9] == ['Jane Doe', 'Artist of the Year', 'Ama Mensah', 'ama@example.com',
                         '+254700000001', '10', '50.00', 'KES', 'completed']


def test_vote_export_respects_status_filter(client, admin_headers, ledger):
    response = client.get('/api/admin/votes/export?status=failed', headers=admin_headers)
    rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
    assert [row[9] for row in rows[1:]] == ['vote-2']


def test_vote_export_quotes_commas(client, admin_headers, nominee):
    add_charge('vote', nominee, 10, 5000, 'vote-q', payer_name='Mensah, Ama "AJ"')
    response = client.get('/api/admin/votes/export', headers=admin_headers)
    rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
    assert rows[1][2] == 'Mensah, Ama "AJ"'


def test_dashboard_totals(client, admin_headers, ledger, nominee, ticket_type):
    db.session.get(Nominee, nominee.id).vote_count = 15
    ticket_type.tickets_sold = 1
    db.session.commit()

    summary = client.get('/api/admin/dashboard', headers=admin_headers).json

    assert summary['total_revenue'] == 1550.0
    assert summary['vote_revenue'] == 50.0
    assert summary['ticket_revenue'] == 1500.0
    assert summary['total_votes'] == 15
    assert summary['total_tickets_sold'] == 1
    assert summary['charges_by_status'] == {'pending': 1, 'completed': 2, 'failed': 1}
    assert summary['charges_needing_review'] == 1
    assert summary['nominees'][0]['category_name'] == 'Artist of the Year'
    assert summary['ticket_types'][0]['remaining'] == 4
