from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from extensions import db
from models import Notification, Payment
from scheduler import notification_job

JSON = {'Accept': 'application/json'}


def _stale_student(make_student):
    return make_student(full_name='Old Timer', joining_date=datetime.utcnow() - timedelta(days=30))


def test_refresh_then_list(auth_client, make_student):
    student = _stale_student(make_student)
    r = auth_client.post('/notifications/refresh', headers=JSON)
    assert r.status_code == 200
    assert r.get_json() == {"total": 1, "added": 1, "updated": 0, "removed": 0}

    r = auth_client.get('/notifications/')
    assert r.status_code == 200
    assert b'Old Timer' in r.data
    assert b'Mark read' in r.data

    data = auth_client.get('/notifications/api').get_json()
    assert data['unread'] == 1
    assert data['notifications'][0]['key'] == f'followup-{student.id}'


def test_refresh_from_the_page_flashes(auth_client, make_student):
    _stale_student(make_student)
    r = auth_client.post('/notifications/refresh', follow_redirects=True)
    assert b'Notifications refreshed (1 active).' in r.data


def test_mark_read(auth_client, make_student):
    _stale_student(make_student)
    auth_client.post('/notifications/refresh', headers=JSON)
    n = Notification.query.one()

    r = auth_client.post(f'/notifications/{n.id}/read', json={})
    assert r.get_json() == {"ok": True, "unread": 0}
    assert db.session.get(Notification, n.id).is_read is True

    r = auth_client.post(f'/notifications/{n.id}/read')
    assert r.headers['Location'] == '/notifications/'
    assert auth_client.post('/notifications/missing/read').status_code == 404


def test_refresh_failure_is_logged(auth_client, app, make_student):
    _stale_student(make_student)
    with patch('routes.notification_routes.refresh_notifications',
               side_effect=OperationalError('select', {}, Exception('down'))), \
            patch.object(app.logger, 'exception') as mock_log:
        r = auth_client.post('/notifications/refresh', headers=JSON)
    assert r.status_code == 500
    assert r.get_json() == {"error": "Refresh failed"}
    assert mock_log.called

    with patch('routes.notification_routes.refresh_notifications',
               side_effect=OperationalError('select', {}, Exception('down'))):
        r = auth_client.post('/notifications/refresh', follow_redirects=True)
    assert b'Could not refresh notifications' in r.data
    assert Notification.query.count() == 0


def test_derived_on_the_fly_when_not_persisted(auth_client, app, make_student):
    app.config['PERSIST_NOTIFICATIONS'] = False
    student = make_student(full_name='Due Soon')
    db.session.add(Payment(student_id=student.id, amount=Decimal('1000.00'), method='upi', paid=False,
                           due_date=date.today() - timedelta(days=3)))
    db.session.commit()

    data = auth_client.get('/notifications/api').get_json()
    assert [n['type'] for n in data['notifications']] == ['overdue']
    assert data['notifications'][0]['id'] is None
    assert data['unread'] == 1

    r = auth_client.post('/notifications/refresh', headers=JSON)
    assert r.get_json()['total'] == 1
    assert Notification.query.count() == 0
    assert b'Due Soon' in auth_client.get('/notifications/').data


def test_scheduled_job_stores_notifications(app, make_student):
    _stale_student(make_student)
    result = notification_job(app)
    assert result == {"total": 1, "added": 1, "updated": 0, "removed": 0}
    assert Notification.query.count() == 1


def test_scheduled_job_failure_rolls_back_and_logs(app):
    with patch('scheduler.refresh_notifications', side_effect=OperationalError('select', {}, Exception('down'))), \
            patch.object(db.session, 'rollback') as mock_rollback, \
            patch.object(app.logger, 'exception') as mock_log:
        assert notification_job(app) is None
    assert mock_rollback.called
    mock_log.assert_called_once_with("Scheduled notification refresh failed")
