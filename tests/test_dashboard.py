from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from extensions import db
from models import Payment


def test_probes_are_public(client):
    assert client.get('/healthz').get_json()['ok'] is True
    assert client.get('/livez').get_json() == {"ok": True}
    r = client.get('/readyz')
    assert r.status_code == 200
    assert r.get_json() == {"ok": True, "db": True}


def test_readyz_reports_database_outage(client):
    with patch('app.db.session.execute', side_effect=OperationalError('SELECT 1', {}, Exception('down'))):
        r = client.get('/readyz')
    assert r.status_code == 503
    assert r.get_json()['db'] is False


def test_security_headers_and_request_id(client):
    r = client.get('/healthz', headers={'X-Request-ID': 'abc123'})
    assert r.headers['X-Content-Type-Options'] == 'nosniff'
    assert r.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert 'cdn.tailwindcss.com' in r.headers['Content-Security-Policy']
    assert r.headers['X-Request-ID'] == 'abc123'
    assert len(client.get('/livez').headers['X-Request-ID']) == 16


def test_login_shortcut(client):
    assert client.get('/login').headers['Location'] == '/auth/login'


def test_dashboard_kpis(auth_client, make_student):
    now = datetime.utcnow()
    a = make_student(full_name='Anil Rao', phone='1', joining_date=now - timedelta(days=2))
    b = make_student(full_name='Bela Das', phone='2', plan_name='Learning Pack', plan_amount=Decimal('2999.00'),
                     current_status='completed', joining_date=now - timedelta(days=30))
    make_student(full_name='Chet Iyer', phone='3', joining_date=now - timedelta(days=3))
    db.session.add_all([
        Payment(student_id=a.id, amount=Decimal('2000.00'), method='upi'),
        Payment(student_id=a.id, amount=Decimal('1500.00'), method='cash'),
        Payment(student_id=b.id, amount=Decimal('5000.00'), method='upi'),
        # scheduled, overdue: counted for attention, not as revenue
        Payment(student_id=a.id, amount=Decimal('1000.00'), method='upi', paid=False,
                due_date=date.today() - timedelta(days=1)),
    ])
    db.session.commit()

    data = auth_client.get('/api/dashboard_data').get_json()
    assert data['total_students'] == 3
    assert data['active_students'] == 2
    assert Decimal(data['amount_due']) == Decimal('3499.00') + Decimal('6999.00')
    assert Decimal(data['revenue_collected']) == Decimal('8500.00')
    assert data['new_this_week'] == 2
    # Anil has an overdue installment, Bela has gone 30 days without a follow-up
    assert data['needs_attention'] == 2
    assert data['status_counts']['completed'] == 1
    assert [row['full_name'] for row in data['due']] == ['Chet Iyer', 'Anil Rao']
    bela = next(row for row in data['recent'] if row['full_name'] == 'Bela Das')
    assert bela['due'] == '0.00'
    assert bela['credit'] == '2001.00'


def test_dashboard_page_renders(auth_client, make_student):
    make_student()
    r = auth_client.get('/')
    assert r.status_code == 200
    for text in (b'Total Students', b'Needs Attention', b'Ravi Kumar', '₹6,999'.encode()):
        assert text in r.data
