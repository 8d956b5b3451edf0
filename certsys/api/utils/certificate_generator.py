"""
Certificate PDF assembler.

Given a certificate request, pick one of five HTML templates, fill in the
resident's profile, inline the barangay and city seals as base64 data URIs,
print the HTML to PDF, upload it to the ``certificates`` bucket and write the
URL and certificate number back to the request.

Any failing step stops the run and returns ``PDFGenerationResult(success=False,
error=...)``. Nothing is retried and completed steps are not undone: a file
that was uploaded before the database write failed stays in storage.

Entry point: generate_certificate_pdf(request_id) -> PDFGenerationResult
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Any, Optional

import requests
from flask import current_app, render_template
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from certsys.api import db
from certsys.api.models.certificate_request import CertificateRequest
from certsys.api.utils.geo import DEFAULT_BARANGAY_INFO
from certsys.api.utils.html_printer import PrintError, print_html_to_pdf
from certsys.api.utils.supabase_storage import SupabaseStorageError, upload_certificate_pdf
from certsys.api.utils.time import calendar_parts, long_date, parse_date, utc_now
from certsys.api.utils.validators import calculate_age, validate_user_data

logger = logging.getLogger(__name__)

BARANGAY_CERTIFICATION = 'Barangay Certification'

TEMPLATES = {
    'Barangay Certification': 'certificates/barangay_certification.html',
    'Barangay Clearance': 'certificates/barangay_certification.html',
    'Certificate of Residency': 'certificates/certificate_of_residency.html',
    'Certificate of Indigency': 'certificates/certificate_of_indigency.html',
    'Business Permit': 'certificates/business_permit.html',
    'Building Permit': 'certificates/building_permit.html',
}

CERTIFICATE_TYPES = tuple(TEMPLATES)

LOGO_DIR = Path(__file__).resolve().parent.parent / 'static' / 'logos'
NUMBER_ATTEMPTS = 5


@dataclass
class CertificateData:
    full_name: str
    address: str
    date_of_birth: Optional[date]
    place_of_birth: Optional[str]
    gender: Optional[str]
    civil_status: Optional[str]
    certificate_type: str
    purpose: str
    certificate_number: str
    issue_date: datetime
    issued_by: Optional[str] = None
    photo_url: Optional[str] = None
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    contact_number: Optional[str] = None
    purok: Optional[str] = None


@dataclass
class PDFGenerationResult:
    success: bool
    pdf_url: Optional[str] = None
    certificate_number: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def _get(record: Any, name: str):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def select_template(certificate_type: str) -> str:
    """Template for a certificate type; unknown types print as a Barangay Certification."""
    return TEMPLATES.get((certificate_type or '').strip(), TEMPLATES[BARANGAY_CERTIFICATION])


def build_certificate_data(user, certificate_type: str, purpose: str, certificate_number: str,
                           issue_date: Optional[datetime] = None, issued_by: Optional[str] = None) -> CertificateData:
    dob = _get(user, 'date_of_birth')
    return CertificateData(
        full_name=_get(user, 'full_name') or '',
        address=_get(user, 'address') or '',
        date_of_birth=parse_date(dob) if dob else None,
        place_of_birth=_get(user, 'place_of_birth'),
        gender=_get(user, 'gender'),
        civil_status=_get(user, 'civil_status'),
        certificate_type=certificate_type,
        purpose=purpose or '',
        certificate_number=certificate_number,
        issue_date=issue_date or utc_now(),
        issued_by=issued_by,
        photo_url=_get(user, 'photo_url'),
        middle_name=_get(user, 'middle_name'),
        suffix=_get(user, 'suffix'),
        contact_number=_get(user, 'phone_number'),
        purok=_get(user, 'purok'),
    )


# =============================================================================
# Seals and photos
# =============================================================================

@lru_cache(maxsize=8)
def _seal_png(name: str, top: str, center: str, color: str) -> bytes:
    """Seal image: the deployed PNG under static/logos, or a drawn stand-in."""
    asset = LOGO_DIR / f"{name}.png"
    if asset.exists():
        return asset.read_bytes()

    size = 240
    img = Image.new('RGBA', (size, size), (255, 255, 255, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse((4, 4, size - 4, size - 4), fill=(255, 255, 255, 255), outline=color, width=10)
    draw.ellipse((30, 30, size - 30, size - 30), outline=color, width=3)
    font = ImageFont.load_default()
    for text, y in ((top, 56), (center, size // 2 - 6), ('SEAL', size - 74)):
        left, upper, right, lower = draw.textbbox((0, 0), text, font=font)
        draw.text(((size - (right - left)) / 2, y), text, fill=color, font=font)
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def _data_uri(png: bytes, mime: str = 'image/png') -> str:
    return f"data:{mime};base64,{base64.b64encode(png).decode('ascii')}"


def barangay_seal_png() -> bytes:
    return _seal_png('luna_seal', 'BARANGAY', 'LUNA', '#1e3a8a')


def logo_data_uris() -> tuple[str, str]:
    """(barangay seal, city seal) as data URIs."""
    luna = barangay_seal_png()
    city = _seal_png('surigao_seal', 'CITY OF', 'SURIGAO', '#166534')
    return _data_uri(luna), _data_uri(city)


def _inline_photo(photo_url: Optional[str]) -> Optional[str]:
    """Fetch the resident photo so the printed PDF carries it inline."""
    if not photo_url:
        return None
    if photo_url.startswith('data:'):
        return photo_url
    try:
        response = requests.get(photo_url, timeout=15)
    except requests.exceptions.RequestException as e:
        logger.warning("Could not fetch photo %s: %s", photo_url, e)
        return None
    content_type = (response.headers.get('Content-Type') or '').split(';')[0]
    if response.status_code != 200 or not content_type.startswith('image/'):
        logger.warning("Photo %s returned %s (%s)", photo_url, response.status_code, content_type)
        return None
    return _data_uri(response.content, content_type)


# =============================================================================
# Rendering
# =============================================================================

def render_certificate_html(data: CertificateData, inline_photo: bool = True) -> str:
    """Fill the template for ``data.certificate_type``."""
    luna_logo, city_logo = logo_data_uris()
    issue = calendar_parts(data.issue_date)
    age = calculate_age(data.date_of_birth, issue['date']) if data.date_of_birth else None

    return render_template(
        select_template(data.certificate_type),
        data=data,
        barangay=DEFAULT_BARANGAY_INFO,
        luna_logo=luna_logo,
        city_logo=city_logo,
        photo_src=_inline_photo(data.photo_url) if inline_photo else None,
        date_of_birth=long_date(data.date_of_birth),
        age=age,
        purpose_upper=(data.purpose or '').upper(),
        issue_day=issue['day'],
        issue_month=issue['month'],
        issue_year=issue['year'],
        issued_by=data.issued_by or current_app.config.get('BARANGAY_CAPTAIN', 'HON. PUNONG BARANGAY'),
    )


def preview_certificate(data: CertificateData) -> bytes:
    """Render and print without uploading or touching the database."""
    return print_html_to_pdf(render_certificate_html(data))


def _max_sequence(year: int) -> int:
    prefix = f"{year}-"
    numbers = (
        db.session.query(CertificateRequest.certificate_number)
        .filter(CertificateRequest.certificate_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        try:
            highest = max(highest, int(number[len(prefix):]))
        except (TypeError, ValueError):
            continue
    return highest


def assign_certificate_number(req: CertificateRequest) -> str:
    """Give the request a number (YYYY-NNNNNN) unless it already has one.

    The number is committed before printing so concurrent generations cannot
    issue the same one; the unique column rejects collisions.
    """
    if req.certificate_number:
        return req.certificate_number

    year = utc_now().year
    for _ in range(NUMBER_ATTEMPTS):
        candidate = f"{year}-{_max_sequence(year) + 1:06d}"
        req.certificate_number = candidate
        try:
            db.session.commit()
            return candidate
        except IntegrityError:
            db.session.rollback()
            logger.info("Certificate number %s already taken, trying next", candidate)
    raise RuntimeError('Could not allocate a certificate number')


def generate_certificate_pdf(request_id: str, issued_by: Optional[str] = None) -> PDFGenerationResult:
    """Generate, upload and record the certificate PDF for a request."""
    req = db.session.get(CertificateRequest, request_id)
    if not req:
        return PDFGenerationResult(False, error='Certificate request not found')

    user = req.user
    if not user:
        return PDFGenerationResult(False, error='User not found')

    missing = validate_user_data(user)
    if missing:
        return PDFGenerationResult(False, error=f"Missing required fields: {', '.join(missing)}")

    try:
        number = assign_certificate_number(req)
    except (RuntimeError, SQLAlchemyError) as e:
        db.session.rollback()
        logger.error("Certificate number allocation failed for %s: %s", request_id, e)
        return PDFGenerationResult(False, error=f'Failed to assign certificate number: {e}')

    data = build_certificate_data(user, req.certificate_type, req.purpose, number, issued_by=issued_by)

    try:
        pdf_bytes = print_html_to_pdf(render_certificate_html(data))
    except PrintError as e:
        logger.error("Certificate print failed for %s: %s", request_id, e)
        return PDFGenerationResult(False, certificate_number=number, error=f'Failed to generate PDF: {e}')

    try:
        _, pdf_url = upload_certificate_pdf(pdf_bytes, user.id)
    except SupabaseStorageError as e:
        logger.error("Certificate upload failed for %s: %s", request_id, e)
        return PDFGenerationResult(False, certificate_number=number, error=f'Failed to upload certificate: {e}')

    req.pdf_url = pdf_url
    req.pdf_generated_at = utc_now()
    req.certificate_number = number
    req.status = 'completed'
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Certificate request update failed for %s (uploaded %s): %s", request_id, pdf_url, e)
        return PDFGenerationResult(False, pdf_url=pdf_url, certificate_number=number,
                                   error=f'Failed to update certificate request: {e}')

    logger.info("Certificate %s generated for request %s", number, request_id)
    return PDFGenerationResult(True, pdf_url=pdf_url, certificate_number=number)
