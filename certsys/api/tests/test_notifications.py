from datetime import timedelta

from flask_jwt_extended import create_access_token

from certsys.api import db
from certsys.api.app import create_app
from certsys.api.config import Config
from certsys.api.models.notification import Notification
from certsys.api.models.user import User
from certsys.api.routes import email as email_routes
from certsys.api.utils.email_sender import EmailResult
from certsys.api.utils.notifications import (
    create_notification,
    notification_color,
    notification_icon,
    notify_status_change,
)
from certsys.api.utils.time import utc_now


class NotificationTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    EMAIL_API_KEY = ''


def _setup():
    app = create_app(NotificationTestConfig)
    with app.app_context():
        db.create_all()
        db.session.add_all([
            User(id='admin-1', email='admin@example.com', full_name='Barangay Admin', role='admin'),
            User(id='u-1', email='ana@example.com', full_name='Ana Cruz', role='resident'),
            User(id='u-2', email='ben@example.com', full_name='Ben Santos', role='resident'),
        ])
        now = utc_now()
        for i, kind in enumerate(('payment', 'approval', 'reminder')):
            n = create_notification('u-1', f'Title {i}', f'Message {i}', kind)
            n.created_at = now - timedelta(minutes=10 - i)
        create_notification('u-2', 'Other', 'Not yours', 'system')
        db.session.commit()
        tokens = {uid: create_access_token(identity=uid) for uid in ('admin-1', 'u-1', 'u-2')}
    return app, tokens


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def test_icon_and_color_fall_back_for_unknown_types():
    assert notification_icon('payment') == 'card'
    assert notification_color('approval') == '#10b981'
    assert notification_icon('mystery') == 'notifications'
    assert notification_color('mystery') == '#64748b'


def test_status_change_notification_titles():
    class Req:
        id = None
        user_id = 'u-1'
        certificate_type = 'Certificate of Residency'
        notes = 'Incomplete documents'

    app = create_app(NotificationTestConfig)
    with app.app_context():
        db.create_all()
        assert notify_status_change(Req, 'pending', 'pending') is None
        assert notify_status_change(Req, 'in_progress', 'completed').title == 'Certificate Ready'
        rejected = notify_status_change(Req, 'pending', 'rejected')
        assert rejected.type == 'rejection'
        assert rejected.message.endswith('Reason: Incomplete documents')
        progress = notify_status_change(Req, 'pending', 'in_progress')
        assert progress.type == 'certificate_status'
        assert 'In Progress' in progress.message
        db.session.rollback()


def test_list_is_newest_first_with_unread_count():
    app, tokens = _setup()
    resp = app.test_client().get('/api/notifications', headers=_auth(tokens['u-1']))
    assert resp.status_code == 200
    body = resp.get_json()
    assert [n['title'] for n in body['notifications']] == ['Title 2', 'Title 1', 'Title 0']
    assert body['unread_count'] == 3
    first = body['notifications'][0]
    assert first['icon'] == 'time'
    assert first['time_label'] == '8 minutes ago'


def test_mark_read_and_read_all():
    app, tokens = _setup()
    client = app.test_client()
    with app.app_context():
        target = Notification.query.filter_by(user_id='u-1', title='Title 0').first().id
        foreign = Notification.query.filter_by(user_id='u-2').first().id

    resp = client.post(f'/api/notifications/{target}/read', headers=_auth(tokens['u-1']))
    assert resp.status_code == 200
    assert resp.get_json()['notification']['is_read'] is True
    assert client.get('/api/notifications/unread-count',
                      headers=_auth(tokens['u-1'])).get_json()['unread_count'] == 2

    assert client.post(f'/api/notifications/{foreign}/read', headers=_auth(tokens['u-1'])).status_code == 404

    resp = client.post('/api/notifications/read-all', headers=_auth(tokens['u-1']))
    assert resp.get_json()['updated'] == 2
    assert client.get('/api/notifications/unread-count',
                      headers=_auth(tokens['u-1'])).get_json()['unread_count'] == 0
    assert client.get('/api/notifications/unread-count',
                      headers=_auth(tokens['u-2'])).get_json()['unread_count'] == 1


def test_delete_only_own_notification():
    app, tokens = _setup()
    client = app.test_client()
    with app.app_context():
        target = Notification.query.filter_by(user_id='u-2').first().id

    assert client.delete(f'/api/notifications/{target}', headers=_auth(tokens['u-1'])).status_code == 404
    assert client.delete(f'/api/notifications/{target}', headers=_auth(tokens['u-2'])).status_code == 200
    with app.app_context():
        assert db.session.get(Notification, target) is None


def test_admin_broadcast():
    app, tokens = _setup()
    client = app.test_client()

    resp = client.post('/api/notifications', json={
        'user_id': 'all', 'title': 'Office closed', 'message': 'Holiday on Monday', 'type': 'system',
    }, headers=_auth(tokens['admin-1']))
    assert resp.status_code == 201
    assert resp.get_json()['count'] == 3

    bad_type = client.post('/api/notifications', json={
        'user_id': 'u-1', 'title': 'x', 'message': 'y', 'type': 'promo',
    }, headers=_auth(tokens['admin-1']))
    assert bad_type.status_code == 400

    forbidden = client.post('/api/notifications', json={
        'user_id': 'u-2', 'title': 'x', 'message': 'y',
    }, headers=_auth(tokens['u-1']))
    assert forbidden.status_code == 403


def test_email_test_endpoint(monkeypatch):
    app, tokens = _setup()
    client = app.test_client()
    sent = []

    def fake_send(to_email):
        sent.append(to_email)
        return EmailResult(success=True, message_id='msg-42')

    monkeypatch.setattr(email_routes, 'send_test_email', fake_send)

    resp = client.post('/api/email/test', json={}, headers=_auth(tokens['admin-1']))
    assert resp.status_code == 200
    assert resp.get_json()['message_id'] == 'msg-42'
    assert sent == ['admin@example.com']

    assert client.post('/api/email/test', json={}, headers=_auth(tokens['u-1'])).status_code == 403


def test_email_test_endpoint_reports_missing_configuration():
    app, tokens = _setup()
    resp = app.test_client().post('/api/email/test', json={'email': 'ops@example.com'},
                                  headers=_auth(tokens['admin-1']))
    assert resp.status_code == 502
    assert resp.get_json() == {'success': False, 'error': 'EMAIL_API_KEY is not configured', 'message_id': None}
