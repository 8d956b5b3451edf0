from datetime import date, datetime

import pytest
from flask_jwt_extended import create_access_token

from certsys.api import db
from certsys.api.app import create_app
from certsys.api.config import Config
from certsys.api.models.certificate_request import CertificateRequest
from certsys.api.models.notification import Notification
from certsys.api.models.user import User
from certsys.api.utils import certificate_generator
from certsys.api.utils.certificate_generator import (
    CERTIFICATE_TYPES,
    build_certificate_data,
    generate_certificate_pdf,
    render_certificate_html,
    select_template,
)
from certsys.api.utils.html_printer import parse_html, print_html_to_pdf
from certsys.api.utils.supabase_storage import SupabaseStorageError
from certsys.api.utils.time import utc_now


class CertificateTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    SUPABASE_URL = 'https://project.supabase.co'
    SUPABASE_SERVICE_KEY = 'service-key'
    BARANGAY_CAPTAIN = 'HON. MARIA SANTOS'


def _resident(**overrides):
    fields = dict(
        id='resident-1',
        email='juan@example.com',
        full_name='Juan Dela Cruz',
        role='resident',
        purok='Purok 2',
        address='Purok 2, Barangay Luna, Surigao City',
        date_of_birth=date(1990, 1, 5),
        place_of_birth='Surigao City',
        gender='Male',
        civil_status='Single',
    )
    fields.update(overrides)
    return User(**fields)


def _seed(app, certificate_type='Certificate of Residency', **user_overrides):
    with app.app_context():
        db.create_all()
        chairman = User(id='chair-1', email='chair@example.com', full_name='Pedro Reyes',
                        role='purok_chairman', purok='Purok 2')
        resident = _resident(purok_chairman_id='chair-1', **user_overrides)
        req = CertificateRequest(
            id='req-1',
            user_id=resident.id,
            certificate_type=certificate_type,
            purpose='Employment',
            status='in_progress',
        )
        db.session.add_all([chairman, resident, req])
        db.session.commit()
        token = create_access_token(identity='chair-1')
    return token


@pytest.mark.parametrize('certificate_type', [
    'Barangay Certification',
    'Certificate of Residency',
    'Certificate of Indigency',
    'Business Permit',
    'Building Permit',
])
def test_each_certificate_type_renders_profile_fields(certificate_type):
    app = create_app(CertificateTestConfig)
    with app.app_context():
        data = build_certificate_data(
            _resident(), certificate_type, 'Scholarship application', '2026-000042',
            issue_date=datetime(2026, 10, 19, 9, 0),
        )
        html = render_certificate_html(data, inline_photo=False)

    assert 'Juan Dela Cruz' in html
    assert 'Purok 2, Barangay Luna, Surigao City' in html
    assert '2026-000042' in html
    assert 'data:image/png;base64,' in html


def test_unknown_type_falls_back_to_barangay_certification():
    assert select_template('Dog License') == select_template('Barangay Certification')
    assert select_template('Barangay Clearance') == select_template('Barangay Certification')
    assert len(set(select_template(t) for t in CERTIFICATE_TYPES)) == 5


def test_printer_produces_pdf_bytes():
    app = create_app(CertificateTestConfig)
    with app.app_context():
        data = build_certificate_data(_resident(), 'Certificate of Indigency', 'Medical assistance', '2026-000001')
        pdf = print_html_to_pdf(render_certificate_html(data, inline_photo=False))
    assert pdf.startswith(b'%PDF')


@pytest.mark.parametrize('certificate_type', [
    'Barangay Certification', 'Certificate of Residency', 'Certificate of Indigency',
    'Business Permit', 'Building Permit',
])
def test_every_template_prints_with_the_html_subset(certificate_type):
    app = create_app(CertificateTestConfig)
    with app.app_context():
        data = build_certificate_data(_resident(), certificate_type, 'Local employment', '2026-000007')
        html = render_certificate_html(data, inline_photo=False)
        pdf = print_html_to_pdf(html)
    assert pdf.startswith(b'%PDF')
    assert parse_html(html).find('body').attrs.get('data-border') == 'true'


def test_missing_place_of_birth_aborts_before_upload(monkeypatch):
    app = create_app(CertificateTestConfig)
    _seed(app, place_of_birth=None)

    def fail_upload(*args, **kwargs):
        raise AssertionError('upload must not be attempted')

    monkeypatch.setattr(certificate_generator, 'upload_certificate_pdf', fail_upload)

    with app.app_context():
        result = generate_certificate_pdf('req-1')
        req = db.session.get(CertificateRequest, 'req-1')
        assert req.pdf_url is None
        assert req.certificate_number is None

    assert result.success is False
    assert result.error == 'Missing required fields: Place of Birth'


def test_generate_uploads_and_writes_back(monkeypatch):
    app = create_app(CertificateTestConfig)
    _seed(app)
    uploads = []

    def fake_upload(pdf_bytes, user_id):
        uploads.append((pdf_bytes, user_id))
        path = f'{user_id}/certificate.pdf'
        return path, f'https://project.supabase.co/storage/v1/object/public/certificates/{path}'

    monkeypatch.setattr(certificate_generator, 'upload_certificate_pdf', fake_upload)

    with app.app_context():
        result = generate_certificate_pdf('req-1')
        assert result.success is True
        req = db.session.get(CertificateRequest, 'req-1')
        assert req.pdf_url == result.pdf_url
        assert req.certificate_number == result.certificate_number
        assert req.status == 'completed'
        assert req.pdf_generated_at is not None

    assert len(uploads) == 1
    assert uploads[0][0].startswith(b'%PDF')
    assert uploads[0][1] == 'resident-1'
    year = utc_now().year
    assert result.certificate_number == f'{year}-000001'


def test_regenerating_keeps_number_and_reads_back_from_database(monkeypatch):
    app = create_app(CertificateTestConfig)
    token = _seed(app)
    uploads = []

    def fake_upload(pdf_bytes, user_id):
        uploads.append(user_id)
        path = f'{user_id}/certificate-{len(uploads)}.pdf'
        return path, f'https://project.supabase.co/storage/v1/object/public/certificates/{path}'

    monkeypatch.setattr(certificate_generator, 'upload_certificate_pdf', fake_upload)

    with app.app_context():
        first = generate_certificate_pdf('req-1')
        second = generate_certificate_pdf('req-1')
        assert first.success and second.success
        assert second.certificate_number == first.certificate_number
        assert second.pdf_url != first.pdf_url

        db.session.expire_all()
        req = db.session.get(CertificateRequest, 'req-1')
        assert req.certificate_number == second.certificate_number
        assert req.pdf_url == second.pdf_url

    resp = app.test_client().get('/api/certificate-requests/req-1',
                                 headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200
    stored = resp.get_json()['request']
    assert stored['certificate_number'] == second.certificate_number
    assert stored['pdf_url'] == second.pdf_url


def test_upload_failure_keeps_number_and_reports_error(monkeypatch):
    app = create_app(CertificateTestConfig)
    _seed(app)

    def broken_upload(pdf_bytes, user_id):
        raise SupabaseStorageError('bucket not found')

    monkeypatch.setattr(certificate_generator, 'upload_certificate_pdf', broken_upload)

    with app.app_context():
        result = generate_certificate_pdf('req-1')
        req = db.session.get(CertificateRequest, 'req-1')
        assert req.pdf_url is None
        assert req.status == 'in_progress'
        # The number stays assigned; a retry reuses it
        assert req.certificate_number == result.certificate_number

    assert result.success is False
    assert 'Failed to upload certificate' in result.error


def test_generate_endpoint_returns_result_and_notifies(monkeypatch):
    app = create_app(CertificateTestConfig)
    token = _seed(app)
    monkeypatch.setattr(
        certificate_generator, 'upload_certificate_pdf',
        lambda pdf_bytes, user_id: ('p.pdf', 'https://project.supabase.co/storage/v1/object/public/certificates/p.pdf'),
    )
    client = app.test_client()

    resp = client.post('/api/certificate-requests/req-1/generate',
                       headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['request']['status'] == 'completed'
    assert body['request']['processed_by'] == 'chair-1'

    with app.app_context():
        ready = Notification.query.filter_by(user_id='resident-1').all()
        assert [n.title for n in ready] == ['Certificate Ready']


def test_generate_endpoint_missing_fields_is_400(monkeypatch):
    app = create_app(CertificateTestConfig)
    token = _seed(app, gender=None, civil_status=None)
    client = app.test_client()

    resp = client.post('/api/certificate-requests/req-1/generate',
                       headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Missing required fields: Gender, Civil Status'


def test_preview_returns_html_without_storing(monkeypatch):
    app = create_app(CertificateTestConfig)
    token = _seed(app, certificate_type='Business Permit')
    client = app.test_client()

    resp = client.get('/api/certificate-requests/req-1/preview',
                      headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200
    assert resp.mimetype == 'text/html'
    assert b'Juan Dela Cruz' in resp.data
    assert b'PREVIEW' in resp.data

    with app.app_context():
        assert db.session.get(CertificateRequest, 'req-1').certificate_number is None
