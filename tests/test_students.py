import csv
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from extensions import db
from models import FollowUp, Payment, StatusHistory, Student, StudentAuditLog


def _form(**overrides):
    data = {
        'full_name': 'Priya Sharma',
        'phone': '9000000001',
        'email': 'priya@example.com',
        'plan_name': 'Starter Kit',
        'batch': 'B7',
        'tags': 'priority, referral, priority',
        'address': '',
    }
    data.update(overrides)
    return data


def test_add_student_takes_amount_from_plan_and_records_audit(auth_client):
    r = auth_client.post('/students/add', data=_form())
    assert r.status_code == 302
    student = Student.query.one()
    assert r.headers['Location'] == f'/students/{student.id}'
    assert student.plan_amount == Decimal('6999.00')
    assert student.tags == ['priority', 'referral']
    assert student.current_status == 'not_started'
    entry = StudentAuditLog.query.one()
    assert entry.change_type == 'created'


def test_add_student_validation_errors(auth_client):
    r = auth_client.post('/students/add', data=_form(full_name=''))
    assert r.status_code == 400
    assert b'Name is required' in r.data

    r = auth_client.post('/students/add', data=_form(plan_name='Gold'))
    assert r.status_code == 400
    assert b'Invalid plan selected' in r.data

    r = auth_client.post('/students/add', data=_form(email='not-an-email'))
    assert r.status_code == 400
    assert Student.query.count() == 0


def test_add_student_database_failure_is_logged_and_rolled_back(auth_client, app):
    with patch('routes.student_routes.record_change', side_effect=OperationalError('insert', {}, Exception('down'))), \
            patch.object(app.logger, 'exception') as mock_log:
        r = auth_client.post('/students/add', data=_form())
    assert r.status_code == 500
    assert b'Could not save the student' in r.data
    assert mock_log.called
    assert Student.query.count() == 0


def test_directory_search_and_filters(auth_client, make_student):
    make_student(full_name='Anil Rao', phone='111', tags=['vip'])
    b = make_student(full_name='Bela Das', phone='222', plan_name='Learning Pack',
                     plan_amount=Decimal('2999.00'), current_status='completed')
    db.session.add(Payment(student_id=b.id, amount=Decimal('2999.00'), method='cash'))
    db.session.commit()

    body = auth_client.get('/students/?q=VIP').data
    assert b'Anil Rao' in body and b'Bela Das' not in body

    body = auth_client.get('/students/?status=completed').data
    assert b'Bela Das' in body and b'Anil Rao' not in body

    body = auth_client.get('/students/?plan=Learning+Pack').data
    assert b'Bela Das' in body and b'Anil Rao' not in body

    body = auth_client.get('/students/?due=1').data
    assert b'Anil Rao' in body and b'Bela Das' not in body


def test_export_csv_honors_filters(auth_client, make_student):
    a = make_student(full_name='Anil Rao', phone='111')
    make_student(full_name='Bela Das', phone='222', current_status='completed')
    db.session.add(Payment(student_id=a.id, amount=Decimal('2000.00'), method='upi'))
    db.session.add(Payment(student_id=a.id, amount=Decimal('1500.00'), method='upi'))
    db.session.commit()

    r = auth_client.get('/students/export.csv?status=not_started')
    assert r.status_code == 200
    assert r.mimetype == 'text/csv'
    assert 'attachment; filename=students_' in r.headers['Content-Disposition']
    rows = list(csv.DictReader(StringIO(r.get_data(as_text=True))))
    assert len(rows) == 1
    assert rows[0]['full_name'] == 'Anil Rao'
    assert rows[0]['paid'] == '3500.00'
    assert rows[0]['due'] == '3499.00'
    assert rows[0]['status'] == 'Not Started'


def test_export_json(auth_client, make_student):
    make_student(full_name='Anil Rao', phone='111', tags=['vip', 'b2'])
    data = auth_client.get('/students/export.json').get_json()
    assert data['count'] == 1
    assert data['students'][0]['tags'] == 'vip, b2'
    assert data['students'][0]['credit'] == '0.00'


def test_profile_renders_all_panels(auth_client, make_student):
    student = make_student()
    db.session.add(FollowUp(student_id=student.id, note='Asked about batch timing'))
    db.session.commit()
    r = auth_client.get(f'/students/{student.id}')
    assert r.status_code == 200
    for text in (b'Ravi Kumar', b'Payments', b'Follow-ups', b'Tasks', b'Audit trail', b'Asked about batch timing'):
        assert text in r.data


def test_profile_unknown_student_is_404(auth_client):
    assert auth_client.get('/students/does-not-exist').status_code == 404


def test_edit_records_one_audit_entry_per_changed_field(auth_client, make_student):
    student = make_student(batch='B1')
    r = auth_client.post(f'/students/{student.id}/edit', data=_form(
        full_name='Ravi Kumar', phone='9876543210', email='ravi@example.com', batch='B2', tags='', plan_name='Starter Kit',
    ))
    assert r.status_code == 302
    entries = StudentAuditLog.query.filter_by(student_id=student.id, change_type='update').all()
    assert [(e.field_name, e.old_value, e.new_value) for e in entries] == [('batch', 'B1', 'B2')]
    assert db.session.get(Student, student.id).batch == 'B2'


def test_edit_plan_change_updates_amount(auth_client, make_student):
    student = make_student()
    auth_client.post(f'/students/{student.id}/edit', data=_form(
        full_name='Ravi Kumar', phone='9876543210', email='ravi@example.com', batch='', tags='', plan_name='Branded DS',
    ))
    student = db.session.get(Student, student.id)
    assert student.plan_amount == Decimal('7999.00')
    fields = {e.field_name for e in StudentAuditLog.query.filter_by(change_type='update')}
    assert fields == {'plan_name', 'plan_amount'}


def test_status_change_appends_history_and_audit(auth_client, make_student, admin_user):
    student = make_student()
    r = auth_client.post(f'/students/{student.id}/status', data={'status': 'website_completed'})
    assert r.status_code == 302
    assert db.session.get(Student, student.id).current_status == 'website_completed'
    history = StatusHistory.query.one()
    assert (history.old_status, history.new_status, history.changed_by) == ('not_started', 'website_completed', admin_user.id)
    entry = StudentAuditLog.query.filter_by(change_type='status_change').one()
    assert entry.changed_by == admin_user.id


def test_any_status_may_follow_any_other(auth_client, make_student):
    student = make_student(current_status='completed')
    auth_client.post(f'/students/{student.id}/status', data={'status': 'not_started'})
    assert db.session.get(Student, student.id).current_status == 'not_started'


def test_unknown_status_is_rejected(auth_client, make_student):
    student = make_student()
    r = auth_client.post(f'/students/{student.id}/status', data={'status': 'scaling'}, follow_redirects=True)
    assert b'Unknown status.' in r.data
    assert StatusHistory.query.count() == 0


def test_delete_cascades(auth_client, make_student):
    student = make_student()
    db.session.add(Payment(student_id=student.id, amount=Decimal('100'), method='cash'))
    db.session.add(FollowUp(student_id=student.id, note='hello'))
    db.session.commit()
    sid = student.id

    r = auth_client.post(f'/students/{sid}/delete')
    assert r.headers['Location'] == '/students/'
    assert db.session.get(Student, sid) is None
    assert Payment.query.count() == 0
    assert FollowUp.query.count() == 0
    assert StudentAuditLog.query.count() == 0
