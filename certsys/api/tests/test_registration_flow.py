from flask_jwt_extended import create_access_token

from certsys.api import db
from certsys.api.app import create_app
from certsys.api.config import Config
from certsys.api.models.notification import Notification
from certsys.api.models.pending_registration import PendingRegistration
from certsys.api.models.user import User
from certsys.api.utils import registration as registration_module
from certsys.api.utils.email_sender import EmailResult


class RegistrationTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    SUPABASE_URL = 'https://project.supabase.co'
    SUPABASE_ANON_KEY = 'anon-key'
    SUPABASE_SERVICE_KEY = 'service-key'


REGISTRATION = {
    'first_name': 'Ana',
    'middle_name': 'Lopez',
    'last_name': 'Cruz',
    'date_of_birth': '1995-08-20',
    'place_of_birth': 'Surigao City',
    'gender': 'Female',
    'civil_status': 'Single',
    'house_number': '12',
    'street': 'Rizal St',
    'phone_number': '09171234567',
    'email': 'Ana.Cruz@Example.com',
    'purok_chairman_id': 'chair-1',
}


def _setup(config=RegistrationTestConfig):
    app = create_app(config)
    with app.app_context():
        db.create_all()
        db.session.add_all([
            User(id='chair-1', email='chair1@example.com', full_name='Pedro Reyes',
                 role='purok_chairman', purok='Purok 1'),
            User(id='chair-2', email='chair2@example.com', full_name='Rosa Diaz',
                 role='purok_chairman', purok='Purok 2'),
        ])
        db.session.commit()
        tokens = {
            'chair-1': create_access_token(identity='chair-1'),
            'chair-2': create_access_token(identity='chair-2'),
        }
    return app, tokens


def _register(client, **overrides):
    return client.post('/api/auth/register', json={**REGISTRATION, **overrides})


def test_register_creates_pending_registration_and_notifies_chairman():
    app, _ = _setup()
    client = app.test_client()

    resp = _register(client)
    assert resp.status_code == 201
    registration = resp.get_json()['registration']
    assert registration['status'] == 'pending'
    assert registration['email'] == 'ana.cruz@example.com'
    assert registration['full_name'] == 'Ana Lopez Cruz'
    assert registration['purok'] == 'Purok 1'
    assert registration['address'] == '12, Rizal St, Purok 1'

    with app.app_context():
        notes = Notification.query.filter_by(user_id='chair-1').all()
        assert [n.type for n in notes] == ['new_registration']
        assert notes[0].meta['registration_id'] == registration['id']


def test_register_validation_and_duplicates():
    app, _ = _setup()
    client = app.test_client()

    missing = client.post('/api/auth/register', json={'first_name': 'Ana'})
    assert missing.status_code == 400

    bad_phone = _register(client, phone_number='12345')
    assert bad_phone.status_code == 400
    assert bad_phone.get_json()['field'] == 'phone_number'

    unknown_chairman = _register(client, purok_chairman_id='nobody')
    assert unknown_chairman.status_code == 400
    assert unknown_chairman.get_json()['field'] == 'purok_chairman_id'

    assert _register(client).status_code == 201
    duplicate = _register(client)
    assert duplicate.status_code == 409
    assert duplicate.get_json()['code'] == 'REGISTRATION_PENDING'


def test_chairmen_directory_is_public():
    app, _ = _setup()
    resp = app.test_client().get('/api/auth/chairmen')
    assert resp.status_code == 200
    assert [c['purok'] for c in resp.get_json()['chairmen']] == ['Purok 1', 'Purok 2']


def test_chairman_sees_only_own_pending_registrations():
    app, tokens = _setup()
    client = app.test_client()
    _register(client)
    _register(client, email='other@example.com', purok_chairman_id='chair-2')

    resp = client.get('/api/registrations/pending', headers={'Authorization': f"Bearer {tokens['chair-1']}"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['count'] == 1
    assert body['registrations'][0]['email'] == 'ana.cruz@example.com'


def test_approve_creates_user_and_emails_password(monkeypatch):
    app, tokens = _setup()
    client = app.test_client()
    registration_id = _register(client).get_json()['registration']['id']
    sent = {}

    def fake_create(email, password, metadata=None):
        sent['password'] = password
        return {'id': 'auth-user-1', 'email': email}

    def fake_email(to_email, full_name, temporary_password):
        sent['email'] = (to_email, full_name, temporary_password)
        return EmailResult(success=True, message_id='msg-1')

    monkeypatch.setattr(registration_module, 'admin_create_user', fake_create)
    monkeypatch.setattr(registration_module, 'send_password_email', fake_email)

    resp = client.post(f'/api/registrations/{registration_id}/approve',
                       headers={'Authorization': f"Bearer {tokens['chair-1']}"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['email_sent'] is True
    assert 'temporary_password' not in body
    assert body['user']['id'] == 'auth-user-1'
    assert body['registration']['status'] == 'approved'
    assert sent['email'] == ('ana.cruz@example.com', 'Ana Lopez Cruz', sent['password'])

    with app.app_context():
        user = db.session.get(User, 'auth-user-1')
        assert user.role == 'resident'
        assert user.purok_chairman_id == 'chair-1'
        assert user.place_of_birth == 'Surigao City'


def test_approve_returns_password_when_email_fails(monkeypatch):
    app, tokens = _setup()
    client = app.test_client()
    registration_id = _register(client).get_json()['registration']['id']

    monkeypatch.setattr(registration_module, 'admin_create_user',
                        lambda email, password, metadata=None: {'id': 'auth-user-2'})
    monkeypatch.setattr(registration_module, 'send_password_email',
                        lambda *args: EmailResult(success=False, error='Email service is not configured'))

    resp = client.post(f'/api/registrations/{registration_id}/approve',
                       headers={'Authorization': f"Bearer {tokens['chair-1']}"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['email_sent'] is False
    assert body['email_error'] == 'Email service is not configured'
    assert len(body['temporary_password']) == 12

    with app.app_context():
        assert db.session.get(User, 'auth-user-2') is not None


def test_approve_without_service_key_is_unavailable():
    class NoServiceKeyConfig(RegistrationTestConfig):
        SUPABASE_SERVICE_KEY = ''

    app, tokens = _setup(NoServiceKeyConfig)
    client = app.test_client()
    registration_id = _register(client).get_json()['registration']['id']

    resp = client.post(f'/api/registrations/{registration_id}/approve',
                       headers={'Authorization': f"Bearer {tokens['chair-1']}"})
    assert resp.status_code == 503
    assert resp.get_json()['code'] == 'UNAVAILABLE'

    with app.app_context():
        assert db.session.get(PendingRegistration, registration_id).status == 'pending'


def test_other_chairman_cannot_review():
    app, tokens = _setup()
    client = app.test_client()
    registration_id = _register(client).get_json()['registration']['id']

    resp = client.post(f'/api/registrations/{registration_id}/approve',
                       headers={'Authorization': f"Bearer {tokens['chair-2']}"})
    assert resp.status_code == 403


def test_reject_requires_reason_and_cannot_repeat():
    app, tokens = _setup()
    client = app.test_client()
    auth = {'Authorization': f"Bearer {tokens['chair-1']}"}
    registration_id = _register(client).get_json()['registration']['id']

    no_reason = client.post(f'/api/registrations/{registration_id}/reject', json={}, headers=auth)
    assert no_reason.status_code == 400
    assert no_reason.get_json()['field'] == 'reason'

    resp = client.post(f'/api/registrations/{registration_id}/reject',
                       json={'reason': 'Not a resident of Purok 1'}, headers=auth)
    assert resp.status_code == 200
    assert resp.get_json()['registration']['rejection_reason'] == 'Not a resident of Purok 1'

    again = client.post(f'/api/registrations/{registration_id}/reject',
                        json={'reason': 'Duplicate'}, headers=auth)
    assert again.status_code == 409
