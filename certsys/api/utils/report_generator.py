"""
Admin reports.

Queries certificate requests for a date range, buckets them and renders one
of four PDFs with ReportLab platypus tables:

- summary: overview (with completion rate), by certificate type, by purok
- detailed: every request in the range (landscape)
- users: registered non-admin users (landscape)
- payments: paid requests with total and average

Every page carries the official footer with "Page i of N".
"""
from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from certsys.api.models.certificate_request import CertificateRequest
from certsys.api.models.user import User
from certsys.api.utils.time import end_of_range, parse_date, utc_now

REPORT_KINDS = ('summary', 'detailed', 'users', 'payments')

FOOTER_TEXT = 'Official Document - Barangay Luna Certificate Management System'
SYSTEM_TITLE = 'Barangay Luna Certificate System'

HEADER_BLUE = HexColor('#4a90e2')
TITLE_BLUE = HexColor('#1e40af')
MUTED = HexColor('#64748b')
FOOTER_GREY = HexColor('#7f8c8d')

_STATUS_BUCKETS = {
    'pending': 'pending',
    'approved': 'approved',
    'processing': 'approved',
    'in_progress': 'approved',
    'completed': 'completed',
    'rejected': 'rejected',
    'cancelled': 'rejected',
}


# =============================================================================
# Data
# =============================================================================

def _request_row(req: CertificateRequest) -> Dict[str, Any]:
    user = req.user
    return {
        'id': req.id,
        'certificate_type': req.certificate_type,
        'status': req.status,
        'payment_status': req.payment_status,
        'payment_amount': float(req.payment_amount) if req.payment_amount is not None else 0.0,
        'created_at': req.created_at,
        'updated_at': req.updated_at,
        'user': {
            'full_name': user.full_name,
            'email': user.email,
            'purok': user.purok,
        } if user else None,
    }


def fetch_report_requests(start_date=None, end_date=None) -> List[Dict[str, Any]]:
    """Requests created in [start_date, end_date] inclusive, newest first."""
    query = CertificateRequest.query
    start = parse_date(start_date)
    if start:
        query = query.filter(CertificateRequest.created_at >= datetime(start.year, start.month, start.day))
    if end_date:
        query = query.filter(CertificateRequest.created_at < end_of_range(end_date))
    rows = query.order_by(CertificateRequest.created_at.desc()).all()
    return [_request_row(r) for r in rows]


def fetch_report_users() -> List[Dict[str, Any]]:
    rows = User.query.filter(User.role != 'admin').order_by(User.created_at.desc()).all()
    return [
        {
            'id': u.id,
            'full_name': u.full_name,
            'email': u.email,
            'role': u.role,
            'purok': u.purok,
            'phone_number': u.phone_number,
            'created_at': u.created_at,
        }
        for u in rows
    ]


def _month_key(value) -> Optional[str]:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if isinstance(value, (datetime, date)):
        return f"{value.year}-{value.month:02d}"
    return None


def analyze_requests(requests: List[Dict[str, Any]]) -> Dict[str, Any]:
    data = {
        'total_requests': len(requests),
        'pending_requests': 0,
        'approved_requests': 0,
        'completed_requests': 0,
        'rejected_requests': 0,
        'total_revenue': 0.0,
        'requests_by_type': Counter(),
        'requests_by_purok': Counter(),
        'requests_by_month': Counter(),
    }

    for req in requests:
        bucket = _STATUS_BUCKETS.get((req.get('status') or '').lower())
        if bucket:
            data[f'{bucket}_requests'] += 1

        if req.get('payment_status') == 'paid' and req.get('payment_amount'):
            data['total_revenue'] += float(req['payment_amount'])

        data['requests_by_type'][req.get('certificate_type') or 'Unknown'] += 1
        purok = (req.get('user') or {}).get('purok') or 'Unknown'
        data['requests_by_purok'][purok] += 1
        month = _month_key(req.get('created_at'))
        if month:
            data['requests_by_month'][month] += 1

    for key in ('requests_by_type', 'requests_by_purok', 'requests_by_month'):
        data[key] = dict(data[key])
    return data


def completion_rate(report: Dict[str, Any]) -> int:
    if not report['total_requests']:
        return 0
    return round(report['completed_requests'] / report['total_requests'] * 100)


# =============================================================================
# PDF plumbing
# =============================================================================

class _FooterCanvas(canvas.Canvas):
    """Defers page output so the footer can print the total page count."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_pages = []

    def showPage(self):
        self._saved_pages.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_pages)
        for state in self._saved_pages:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        width, _ = self._pagesize
        self.saveState()
        self.setFont('Helvetica', 8)
        self.setFillColor(FOOTER_GREY)
        self.drawCentredString(width / 2, 10 * mm, f"{FOOTER_TEXT} | Page {self._pageNumber} of {total}")
        self.restoreState()


def _styles():
    base = getSampleStyleSheet()
    return {
        'title': ParagraphStyle('ReportTitle', parent=base['Title'], fontSize=18, textColor=TITLE_BLUE,
                                alignment=TA_CENTER, spaceAfter=4, fontName='Helvetica-Bold'),
        'subtitle': ParagraphStyle('ReportSubtitle', parent=base['Heading2'], fontSize=14, textColor=HEADER_BLUE,
                                   alignment=TA_CENTER, spaceAfter=6),
        'meta': ParagraphStyle('ReportMeta', parent=base['BodyText'], fontSize=9, textColor=MUTED,
                               alignment=TA_CENTER, leading=12),
        'section': ParagraphStyle('ReportSection', parent=base['Heading3'], fontSize=13,
                                  textColor=HexColor('#1e293b'), spaceBefore=12, spaceAfter=6),
        'cell': ParagraphStyle('ReportCell', parent=base['BodyText'], fontSize=8, leading=10),
    }


def _table(head: List[str], body: List[List[Any]], col_widths=None, striped=False, font_size=9) -> Table:
    table = Table([head] + (body or [['No records'] + [''] * (len(head) - 1)]),
                  colWidths=col_widths, repeatRows=1, hAlign='LEFT')
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), HEADER_BLUE),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), font_size),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]
    if striped:
        commands.append(('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, HexColor('#f1f5f9')]))
    else:
        commands.append(('GRID', (0, 0), (-1, -1), 0.5, HexColor('#cbd5e1')))
    table.setStyle(TableStyle(commands))
    return table


def _header(styles, subtitle: str, *meta_lines: str) -> list:
    elements = [
        Paragraph(SYSTEM_TITLE, styles['title']),
        Paragraph(subtitle, styles['subtitle']),
        Paragraph(f"Report Generated: {utc_now().strftime('%m/%d/%Y')}", styles['meta']),
    ]
    elements.extend(Paragraph(line, styles['meta']) for line in meta_lines)
    elements.append(Spacer(1, 8 * mm))
    return elements


def _build(elements: list, pagesize=A4) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=pagesize,
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=18 * mm,
        bottomMargin=20 * mm,
        title=SYSTEM_TITLE,
    )
    doc.build(elements, canvasmaker=_FooterCanvas)
    return buffer.getvalue()


def _peso(amount: float) -> str:
    return f"PHP {amount:,.2f}"


def _short_date(value) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if not value:
        return 'N/A'
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def _share_rows(counts: Dict[str, int], total: int) -> List[List[str]]:
    rows = []
    for name, count in sorted(counts.items(), key=lambda item: item[1], reverse=True):
        share = f"{count / total * 100:.1f}%" if total else '0.0%'
        rows.append([name, str(count), share])
    return rows


# =============================================================================
# Reports
# =============================================================================

def generate_summary_pdf(report: Dict[str, Any], start_date: str, end_date: str) -> bytes:
    styles = _styles()
    elements = _header(styles, 'Certificate Requests Summary Report', f"Period: {start_date} to {end_date}")

    elements.append(Paragraph('Overview', styles['section']))
    elements.append(_table(['Metric', 'Value'], [
        ['Total Requests', str(report['total_requests'])],
        ['Pending', str(report['pending_requests'])],
        ['Approved/Processing', str(report['approved_requests'])],
        ['Completed', str(report['completed_requests'])],
        ['Rejected', str(report['rejected_requests'])],
        ['Total Revenue', _peso(report['total_revenue'])],
        ['Completion Rate', f"{completion_rate(report)}%"],
    ], col_widths=[90 * mm, 80 * mm]))

    elements.append(Paragraph('Requests by Certificate Type', styles['section']))
    elements.append(_table(['Certificate Type', 'Count', 'Percentage'],
                           _share_rows(report['requests_by_type'], report['total_requests']),
                           col_widths=[90 * mm, 40 * mm, 40 * mm], striped=True))

    elements.append(Paragraph('Requests by Purok', styles['section']))
    elements.append(_table(['Purok', 'Count', 'Percentage'],
                           _share_rows(report['requests_by_purok'], report['total_requests']),
                           col_widths=[90 * mm, 40 * mm, 40 * mm], striped=True))
    return _build(elements)


def generate_detailed_pdf(requests: List[Dict[str, Any]], start_date: str, end_date: str) -> bytes:
    styles = _styles()
    elements = _header(
        styles, 'Detailed Certificate Requests Report',
        f"Period: {start_date} to {end_date} | Total Records: {len(requests)}",
    )
    body = []
    for req in requests:
        user = req.get('user') or {}
        body.append([
            _short_date(req.get('created_at')),
            Paragraph(user.get('full_name') or 'N/A', styles['cell']),
            Paragraph(user.get('email') or 'N/A', styles['cell']),
            user.get('purok') or 'N/A',
            Paragraph(req.get('certificate_type') or '', styles['cell']),
            (req.get('status') or '').upper(),
            (req.get('payment_status') or '').upper(),
            _peso(req.get('payment_amount') or 0),
        ])
    widths = [24 * mm, 42 * mm, 52 * mm, 22 * mm, 42 * mm, 26 * mm, 24 * mm, 26 * mm]
    elements.append(_table(
        ['Date', 'Resident Name', 'Email', 'Purok', 'Certificate Type', 'Status', 'Payment', 'Amount'],
        body, col_widths=widths, font_size=8,
    ))
    return _build(elements, pagesize=landscape(A4))


def generate_users_pdf(users: List[Dict[str, Any]]) -> bytes:
    styles = _styles()
    elements = _header(styles, 'Registered Users Report', f"Total Users: {len(users)}")
    body = [
        [
            Paragraph(u.get('full_name') or '', styles['cell']),
            Paragraph(u.get('email') or '', styles['cell']),
            u.get('phone_number') or 'N/A',
            (u.get('role') or '').replace('_', ' ').upper(),
            u.get('purok') or 'N/A',
            _short_date(u.get('created_at')),
        ]
        for u in users
    ]
    widths = [55 * mm, 65 * mm, 35 * mm, 40 * mm, 30 * mm, 34 * mm]
    elements.append(_table(['Name', 'Email', 'Phone', 'Role', 'Purok', 'Registered Date'],
                           body, col_widths=widths, striped=True, font_size=8))
    return _build(elements, pagesize=landscape(A4))


def generate_payments_pdf(requests: List[Dict[str, Any]], start_date: str, end_date: str) -> bytes:
    styles = _styles()
    paid = [r for r in requests if r.get('payment_status') == 'paid']
    total = sum(float(r.get('payment_amount') or 0) for r in paid)
    average = total / len(paid) if paid else 0.0

    elements = _header(styles, 'Payments & Revenue Report', f"Period: {start_date} to {end_date}")
    elements.append(Paragraph('Revenue Summary', styles['section']))
    elements.append(_table(['Metric', 'Value'], [
        ['Total Paid Transactions', str(len(paid))],
        ['Total Revenue', _peso(total)],
        ['Average Transaction Amount', _peso(average)],
    ], col_widths=[90 * mm, 80 * mm]))

    elements.append(Paragraph('Paid Transactions', styles['section']))
    body = [
        [
            _short_date(r.get('created_at')),
            Paragraph((r.get('user') or {}).get('full_name') or 'N/A', styles['cell']),
            Paragraph(r.get('certificate_type') or '', styles['cell']),
            _peso(r.get('payment_amount') or 0),
        ]
        for r in paid
    ]
    elements.append(_table(['Date', 'Customer', 'Certificate Type', 'Amount'], body,
                           col_widths=[32 * mm, 60 * mm, 52 * mm, 36 * mm], striped=True))
    return _build(elements)


def build_report(kind: str, start_date=None, end_date=None) -> bytes:
    """Render one of REPORT_KINDS; raises ValueError for anything else."""
    start_label = start_date or 'beginning'
    end_label = end_date or utc_now().date().isoformat()
    if kind == 'summary':
        requests = fetch_report_requests(start_date, end_date)
        return generate_summary_pdf(analyze_requests(requests), start_label, end_label)
    if kind == 'detailed':
        return generate_detailed_pdf(fetch_report_requests(start_date, end_date), start_label, end_label)
    if kind == 'users':
        return generate_users_pdf(fetch_report_users())
    if kind == 'payments':
        return generate_payments_pdf(fetch_report_requests(start_date, end_date), start_label, end_label)
    raise ValueError(f'Unknown report type: {kind}')


def report_filename(kind: str, start_date=None, end_date=None) -> str:
    if kind == 'users':
        return f"users-report-{utc_now().date().isoformat()}.pdf"
    return f"{kind}-report-{start_date or 'all'}-to-{end_date or utc_now().date().isoformat()}.pdf"
