from datetime import datetime, timedelta

from extensions import db
from models import FollowUp, StudentAuditLog, Task
from utils.audit import record_change


def test_follow_up_is_saved_with_author(auth_client, make_student, admin_user):
    student = make_student()
    r = auth_client.post(f'/students/{student.id}/follow_ups', data={'note': 'Called, will pay Friday'}, follow_redirects=True)
    assert b'Follow-up added.' in r.data
    follow_up = FollowUp.query.one()
    assert follow_up.created_by == admin_user.id
    assert StudentAuditLog.query.filter_by(change_type='follow_up_created').count() == 1


def test_follow_up_length_limits(auth_client, make_student):
    student = make_student()
    r = auth_client.post(f'/students/{student.id}/follow_ups', data={'note': '   '}, follow_redirects=True)
    assert b'Follow-up note is required' in r.data
    r = auth_client.post(f'/students/{student.id}/follow_ups', data={'note': 'x' * 1001}, follow_redirects=True)
    assert b'at most 1000 characters' in r.data
    assert FollowUp.query.count() == 0


def test_task_create_and_toggle(auth_client, make_student):
    student = make_student()
    r = auth_client.post(f'/students/{student.id}/tasks', data={'title': 'Share store template', 'due_date': '2030-01-31'})
    assert r.status_code == 302
    task = Task.query.one()
    assert task.due_date.isoformat() == '2030-01-31'
    assert task.completed is False

    auth_client.post(f'/tasks/{task.id}/toggle')
    task = db.session.get(Task, task.id)
    assert task.completed is True
    assert task.completed_at is not None

    auth_client.post(f'/tasks/{task.id}/toggle')
    task = db.session.get(Task, task.id)
    assert task.completed is False
    assert task.completed_at is None

    types = [e.change_type for e in StudentAuditLog.query.order_by(StudentAuditLog.changed_at)]
    assert types == ['task_created', 'task_completed', 'task_reopened']


def test_task_rejects_bad_due_date(auth_client, make_student):
    student = make_student()
    r = auth_client.post(f'/students/{student.id}/tasks', data={'title': 'Call', 'due_date': '31/01/2030'}, follow_redirects=True)
    assert b'Dates must look like YYYY-MM-DD' in r.data
    assert Task.query.count() == 0


def test_audit_feed_returns_entries_newer_than_cursor(auth_client, make_student, admin_user):
    student = make_student()
    old = record_change(student.id, 'update', description='Phone updated', field_name='phone', old_value='1', new_value='2')
    old.changed_at = datetime.utcnow() - timedelta(minutes=10)
    old.changed_by = admin_user.id
    db.session.commit()

    data = auth_client.get(f'/students/{student.id}/audit.json').get_json()
    assert len(data['entries']) == 1
    entry = data['entries'][0]
    assert entry['user_email'] == 'admin@example.com'
    assert entry['field_label'] == 'Phone'
    cursor = data['cursor']

    data = auth_client.get(f'/students/{student.id}/audit.json', query_string={'since': cursor}).get_json()
    assert data['entries'] == []
    assert data['cursor'] == cursor

    auth_client.post(f'/students/{student.id}/follow_ups', data={'note': 'New note'})
    data = auth_client.get(f'/students/{student.id}/audit.json', query_string={'since': cursor}).get_json()
    assert [e['change_type'] for e in data['entries']] == ['follow_up_created']


def test_audit_feed_unknown_actor_and_bad_cursor(auth_client, make_student):
    student = make_student()
    record_change(student.id, 'created', description='Imported')
    db.session.commit()
    data = auth_client.get(f'/students/{student.id}/audit.json').get_json()
    assert data['entries'][0]['user_email'] == 'Unknown User'

    r = auth_client.get(f'/students/{student.id}/audit.json?since=yesterday')
    assert r.status_code == 400
