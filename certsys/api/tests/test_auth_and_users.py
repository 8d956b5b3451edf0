from io import BytesIO

import requests
from flask_jwt_extended import create_access_token
from PIL import Image

from certsys.api import db
from certsys.api.app import create_app
from certsys.api.config import Config
from certsys.api.models.user import User
from certsys.api.routes import auth as auth_routes
from certsys.api.routes import users as users_routes
from certsys.api.utils import supabase_auth
from certsys.api.utils.supabase_auth import SupabaseAuthError, sign_up


class AuthUsersTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    SUPABASE_URL = 'https://project.supabase.co'
    SUPABASE_ANON_KEY = 'anon-key'
    SUPABASE_SERVICE_KEY = 'service-key'


def _setup():
    app = create_app(AuthUsersTestConfig)
    with app.app_context():
        db.create_all()
        db.session.add_all([
            User(id='admin-1', email='admin@example.com', full_name='Barangay Admin', role='admin'),
            User(id='chair-1', email='chair1@example.com', full_name='Pedro Reyes',
                 role='purok_chairman', purok='Purok 1', phone_number='09170000001'),
            User(id='u-1', email='ana@example.com', full_name='Ana Cruz', role='resident',
                 purok='Purok 1', purok_chairman_id='chair-1'),
            User(id='u-2', email='ben@example.com', full_name='Ben Santos', role='resident'),
        ])
        db.session.commit()
        tokens = {uid: create_access_token(identity=uid) for uid in ('admin-1', 'chair-1', 'u-1', 'u-2')}
    return app, tokens


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def _session(user_id):
    return {
        'access_token': 'access',
        'refresh_token': 'refresh',
        'expires_in': 3600,
        'expires_at': 1900000000,
        'token_type': 'bearer',
        'user': {'id': user_id},
    }


def test_login_returns_session_and_profile(monkeypatch):
    app, _ = _setup()
    calls = []

    def fake_sign_in(email, password):
        calls.append(email)
        return _session('u-1')

    monkeypatch.setattr(auth_routes, 'sign_in_with_password', fake_sign_in)

    resp = app.test_client().post('/api/auth/login', json={'email': ' Ana@Example.com ', 'password': 'secret123'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['access_token'] == 'access'
    assert body['user']['full_name'] == 'Ana Cruz'
    assert calls == ['ana@example.com']


def test_login_maps_bad_credentials_to_401(monkeypatch):
    app, _ = _setup()

    def rejected(email, password):
        raise SupabaseAuthError('Invalid login credentials', 400)

    monkeypatch.setattr(auth_routes, 'sign_in_with_password', rejected)
    resp = app.test_client().post('/api/auth/login', json={'email': 'ana@example.com', 'password': 'nope'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid email or password'


def test_login_without_profile_is_404(monkeypatch):
    app, _ = _setup()
    monkeypatch.setattr(auth_routes, 'sign_in_with_password', lambda email, password: _session('ghost'))
    resp = app.test_client().post('/api/auth/login', json={'email': 'ghost@example.com', 'password': 'x'})
    assert resp.status_code == 404


def test_refresh_failure_asks_for_reauth(monkeypatch):
    app, _ = _setup()

    def expired(refresh_token):
        raise SupabaseAuthError('Invalid Refresh Token: Already Used', 400)

    monkeypatch.setattr(auth_routes, 'refresh_session', expired)
    resp = app.test_client().post('/api/auth/refresh', json={'refresh_token': 'used'})
    assert resp.status_code == 401
    assert resp.get_json()['should_reauth'] is True


def test_protected_routes_require_token():
    app, _ = _setup()
    resp = app.test_client().get('/api/users/me')
    assert resp.status_code == 401
    assert resp.get_json()['code'] == 'AUTH_REQUIRED'


def test_profile_update_ignores_privileged_fields():
    app, tokens = _setup()
    client = app.test_client()
    resp = client.patch('/api/users/me', json={
        'role': 'admin',
        'purok_chairman_id': None,
        'place_of_birth': 'Surigao City',
        'gender': 'Female',
        'date_of_birth': '1995-08-20',
    }, headers=_auth(tokens['u-1']))
    assert resp.status_code == 200
    user = resp.get_json()['user']
    assert user['role'] == 'resident'
    assert user['purok_chairman_id'] == 'chair-1'
    assert user['date_of_birth'] == '1995-08-20'

    readiness = client.get('/api/users/me/certificate-readiness', headers=_auth(tokens['u-1'])).get_json()
    assert readiness == {'is_complete': False, 'missing_fields': ['Address', 'Civil Status']}

    bad = client.patch('/api/users/me', json={'gender': 'Unknown'}, headers=_auth(tokens['u-1']))
    assert bad.status_code == 400
    assert bad.get_json()['field'] == 'gender'


def test_photo_upload_validates_image(monkeypatch):
    app, tokens = _setup()
    client = app.test_client()
    monkeypatch.setattr(users_routes, 'upload_profile_photo',
                        lambda data, user_id, mime: f'https://cdn.example.com/{user_id}.png')

    buffer = BytesIO()
    Image.new('RGB', (8, 8), (30, 58, 138)).save(buffer, format='PNG')
    resp = client.post('/api/users/me/photo', data={'photo': (BytesIO(buffer.getvalue()), 'me.png')},
                       headers=_auth(tokens['u-1']), content_type='multipart/form-data')
    assert resp.status_code == 200
    assert resp.get_json()['photo_url'] == 'https://cdn.example.com/u-1.png'

    fake = client.post('/api/users/me/photo', data={'photo': (BytesIO(b'not an image'), 'x.png')},
                       headers=_auth(tokens['u-1']), content_type='multipart/form-data')
    assert fake.status_code == 400


def test_my_chairman_and_residents():
    app, tokens = _setup()
    client = app.test_client()

    chairman = client.get('/api/users/my-chairman', headers=_auth(tokens['u-1'])).get_json()['chairman']
    assert chairman['full_name'] == 'Pedro Reyes'
    assert client.get('/api/users/my-chairman', headers=_auth(tokens['u-2'])).status_code == 404

    residents = client.get('/api/users/residents', headers=_auth(tokens['chair-1'])).get_json()
    assert [r['id'] for r in residents['residents']] == ['u-1']
    assert client.get('/api/users/residents', headers=_auth(tokens['u-1'])).status_code == 403

    assert client.get('/api/users/u-1', headers=_auth(tokens['chair-1'])).status_code == 200
    assert client.get('/api/users/u-2', headers=_auth(tokens['chair-1'])).status_code == 403


def test_admin_creates_user_with_generated_password(monkeypatch):
    app, tokens = _setup()
    created = {}

    def fake_create(email, password, metadata=None):
        created.update(email=email, password=password, metadata=metadata)
        return {'id': 'auth-new'}

    monkeypatch.setattr(users_routes, 'admin_create_user', fake_create)

    resp = app.test_client().post('/api/users', json={
        'email': 'chair3@example.com', 'full_name': 'Lito Ramos', 'role': 'purok_chairman', 'purok': 'Purok 3',
    }, headers=_auth(tokens['admin-1']))
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['user']['id'] == 'auth-new'
    assert body['password'] == created['password']
    assert created['metadata'] == {'full_name': 'Lito Ramos', 'role': 'purok_chairman'}


def test_admin_delete_reports_auth_cleanup_failure(monkeypatch):
    app, tokens = _setup()

    def auth_down(user_id):
        raise SupabaseAuthError('Authentication service unavailable', 502)

    monkeypatch.setattr(users_routes, 'admin_delete_user', auth_down)
    client = app.test_client()

    resp = client.delete('/api/users/u-2', headers=_auth(tokens['admin-1']))
    assert resp.status_code == 502
    assert resp.get_json()['code'] == 'AUTH_DELETE_FAILED'
    with app.app_context():
        assert db.session.get(User, 'u-2') is None

    assert client.delete('/api/users/admin-1', headers=_auth(tokens['admin-1'])).status_code == 400


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.content = b'{}'
        self.text = ''

    def json(self):
        return self._body


def test_sign_up_posts_to_gotrue_with_anon_key(monkeypatch):
    app, _ = _setup()
    calls = []

    def fake_request(method, url, headers=None, json=None, params=None, timeout=None):
        calls.append((method, url, headers, json, timeout))
        return FakeResponse(200, {'id': 'auth-9', 'email': json['email']})

    monkeypatch.setattr(supabase_auth.requests, 'request', fake_request)
    with app.app_context():
        user = sign_up('lito@example.com', 'Secret123', {'full_name': 'Lito Ramos'})

    assert user['id'] == 'auth-9'
    method, url, headers, payload, timeout = calls[0]
    assert (method, url) == ('POST', 'https://project.supabase.co/auth/v1/signup')
    assert headers['apikey'] == 'anon-key'
    assert payload['data'] == {'full_name': 'Lito Ramos'}
    assert timeout == 30


def test_auth_timeouts_surface_as_504(monkeypatch):
    app, _ = _setup()

    def timed_out(*args, **kwargs):
        raise requests.exceptions.Timeout('read timed out')

    monkeypatch.setattr(supabase_auth.requests, 'request', timed_out)
    resp = app.test_client().post('/api/auth/login', json={'email': 'ana@example.com', 'password': 'secret123'})
    assert resp.status_code == 504
    body = resp.get_json()
    assert body == {'error': 'Authentication service timed out', 'code': 'TIMEOUT'}


def test_gotrue_errors_keep_their_status(monkeypatch):
    app, tokens = _setup()
    monkeypatch.setattr(supabase_auth.requests, 'request',
                        lambda *args, **kwargs: FakeResponse(422, {'msg': 'Password is too weak'}))
    resp = app.test_client().post('/api/users', json={
        'email': 'new@example.com', 'full_name': 'New Person', 'role': 'resident',
    }, headers=_auth(tokens['admin-1']))
    assert resp.status_code == 422
    assert resp.get_json()['error'] == 'Password is too weak'
