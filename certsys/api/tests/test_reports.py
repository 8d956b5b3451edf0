from datetime import datetime
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from certsys.api import db
from certsys.api.app import create_app
from certsys.api.config import Config
from certsys.api.models.certificate_request import CertificateRequest
from certsys.api.models.user import User
from certsys.api.utils.report_generator import (
    analyze_requests,
    build_report,
    completion_rate,
    fetch_report_requests,
    report_filename,
)


class ReportTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False


def _seed(app):
    with app.app_context():
        db.create_all()
        admin = User(id='admin-1', email='admin@example.com', full_name='Barangay Admin', role='admin')
        ana = User(id='u-1', email='ana@example.com', full_name='Ana Cruz', role='resident', purok='Purok 1')
        ben = User(id='u-2', email='ben@example.com', full_name='Ben Santos', role='resident')
        db.session.add_all([admin, ana, ben])
        db.session.add_all([
            CertificateRequest(id='r1', user_id='u-1', certificate_type='Certificate of Residency',
                               purpose='School', status='completed', payment_status='paid',
                               payment_amount=Decimal('50.00'), created_at=datetime(2026, 3, 10, 8)),
            CertificateRequest(id='r2', user_id='u-1', certificate_type='Business Permit',
                               purpose='Store', status='pending', created_at=datetime(2026, 3, 31, 23)),
            CertificateRequest(id='r3', user_id='u-2', certificate_type='Certificate of Residency',
                               purpose='Bank', status='rejected', payment_status='failed',
                               payment_amount=Decimal('100.00'), created_at=datetime(2026, 4, 2, 9)),
            CertificateRequest(id='r4', user_id='u-2', certificate_type='Building Permit',
                               purpose='House', status='in_progress', payment_status='paid',
                               payment_amount=Decimal('150.00'), created_at=datetime(2026, 4, 15, 9)),
        ])
        db.session.commit()
        token = create_access_token(identity='admin-1')
    return token


def test_analyze_requests_counts_buckets_and_revenue():
    app = create_app(ReportTestConfig)
    _seed(app)
    with app.app_context():
        report = analyze_requests(fetch_report_requests())

    assert report['total_requests'] == 4
    assert report['pending_requests'] == 1
    assert report['approved_requests'] == 1
    assert report['completed_requests'] == 1
    assert report['rejected_requests'] == 1
    assert report['total_revenue'] == pytest.approx(200.0)
    assert report['requests_by_type'] == {
        'Certificate of Residency': 2,
        'Business Permit': 1,
        'Building Permit': 1,
    }
    assert report['requests_by_purok'] == {'Purok 1': 2, 'Unknown': 2}
    assert report['requests_by_month'] == {'2026-03': 2, '2026-04': 2}
    assert completion_rate(report) == 25


def test_date_range_is_inclusive_of_end_day():
    app = create_app(ReportTestConfig)
    _seed(app)
    with app.app_context():
        rows = fetch_report_requests('2026-03-01', '2026-03-31')
    assert [r['id'] for r in rows] == ['r2', 'r1']


def test_completion_rate_of_empty_report_is_zero():
    assert completion_rate(analyze_requests([])) == 0


@pytest.mark.parametrize('kind', ['summary', 'detailed', 'users', 'payments'])
def test_every_report_kind_renders_a_pdf(kind):
    app = create_app(ReportTestConfig)
    _seed(app)
    with app.app_context():
        pdf = build_report(kind, '2026-01-01', '2026-12-31')
    assert pdf.startswith(b'%PDF')


def test_unknown_report_kind_raises():
    app = create_app(ReportTestConfig)
    with app.app_context():
        db.create_all()
        with pytest.raises(ValueError):
            build_report('inventory')


def test_report_filename():
    assert report_filename('summary', '2026-01-01', '2026-06-30') == 'summary-report-2026-01-01-to-2026-06-30.pdf'


def test_summary_data_endpoint():
    app = create_app(ReportTestConfig)
    token = _seed(app)
    client = app.test_client()

    resp = client.get('/api/reports/summary-data', query_string={'start_date': '2026-04-01'},
                      headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['start_date'] == '2026-04-01'
    assert body['report']['total_requests'] == 2
    assert body['report']['completion_rate'] == 0


def test_report_download_and_validation():
    app = create_app(ReportTestConfig)
    token = _seed(app)
    client = app.test_client()
    auth = {'Authorization': f'Bearer {token}'}

    resp = client.get('/api/reports/payments', headers=auth)
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'
    assert 'attachment' in resp.headers['Content-Disposition']
    assert resp.data.startswith(b'%PDF')

    assert client.get('/api/reports/inventory', headers=auth).status_code == 404
    bad = client.get('/api/reports/summary', query_string={'start_date': '03/01/2026'}, headers=auth)
    assert bad.status_code == 400
    assert bad.get_json()['field'] == 'start_date'


def test_reports_are_admin_only():
    app = create_app(ReportTestConfig)
    _seed(app)
    with app.app_context():
        token = create_access_token(identity='u-1')
    resp = app.test_client().get('/api/reports/summary-data', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 403
