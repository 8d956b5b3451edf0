"""
Official payment receipt for a paid certificate request.

A single A4 page drawn with ReportLab platypus: seal and barangay header,
the amount paid, then the transaction details (reference, certificate type,
method, payment date, receipt number, transaction id) and the contact note.
"""
from __future__ import annotations

from io import BytesIO
from typing import List, Tuple

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from certsys.api.models.certificate_request import CertificateRequest
from certsys.api.utils.certificate_generator import barangay_seal_png
from certsys.api.utils.time import utc_now

RECEIPT_TITLE = 'Barangay Luna Payment Receipt'

BRAND_BLUE = HexColor('#1e3a8a')
PAID_GREEN = HexColor('#166534')
MUTED = HexColor('#64748b')
RULE = HexColor('#e2e8f0')


def receipt_number(req: CertificateRequest) -> str:
    """RCP-<payment date YYYYMMDD>-<first 8 hex digits of the request id>."""
    paid_on = req.payment_date or req.updated_at or utc_now()
    return f"RCP-{paid_on:%Y%m%d}-{req.id.replace('-', '')[:8].upper()}"


def receipt_amount(req: CertificateRequest) -> float:
    amount = req.payment_amount if req.payment_amount is not None else req.amount
    return float(amount or 0)


def receipt_details(req: CertificateRequest) -> List[Tuple[str, str]]:
    paid_on = req.payment_date
    return [
        ('Reference Number', req.payment_reference or 'N/A'),
        ('Certificate Type', req.certificate_type),
        ('Payment Method', (req.payment_method or 'N/A').upper()),
        ('Transaction Date', paid_on.strftime('%B %d, %Y %I:%M %p') if paid_on else 'N/A'),
        ('Receipt Number', receipt_number(req)),
        ('Transaction ID', req.id),
    ]


def _styles():
    base = getSampleStyleSheet()
    return {
        'brand': ParagraphStyle('ReceiptBrand', parent=base['BodyText'], fontSize=11, leading=15,
                                alignment=TA_CENTER, textColor=BRAND_BLUE),
        'title': ParagraphStyle('ReceiptTitle', parent=base['Title'], fontSize=20, textColor=BRAND_BLUE,
                                alignment=TA_CENTER, spaceBefore=6, spaceAfter=6),
        'status': ParagraphStyle('ReceiptStatus', parent=base['BodyText'], fontSize=11, alignment=TA_CENTER,
                                 textColor=PAID_GREEN, fontName='Helvetica-Bold'),
        'amount_label': ParagraphStyle('ReceiptAmountLabel', parent=base['BodyText'], fontSize=10,
                                       alignment=TA_CENTER, textColor=MUTED),
        'amount': ParagraphStyle('ReceiptAmount', parent=base['Title'], fontSize=26, leading=32,
                                 alignment=TA_CENTER, textColor=colors.black),
        'note': ParagraphStyle('ReceiptNote', parent=base['BodyText'], fontSize=9, leading=13,
                               alignment=TA_CENTER, textColor=MUTED),
    }


def generate_receipt_pdf(req: CertificateRequest) -> bytes:
    styles = _styles()
    contact_email = current_app.config.get('BARANGAY_CONTACT_EMAIL')
    contact_phone = current_app.config.get('BARANGAY_CONTACT_PHONE')

    details = Table([list(row) for row in receipt_details(req)], colWidths=[60 * mm, 100 * mm])
    details.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica'),
        ('FONTNAME', (1, 0), (1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (0, -1), MUTED),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('LINEBELOW', (0, 0), (-1, -2), 0.5, RULE),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))

    elements = [
        Image(BytesIO(barangay_seal_png()), width=28 * mm, height=28 * mm),
        Paragraph('<b>BARANGAY LUNA</b><br/>Surigao City, Philippines<br/>Official Payment Receipt',
                  styles['brand']),
        Paragraph('Payment Receipt', styles['title']),
        Paragraph(req.payment_status.upper(), styles['status']),
        Spacer(1, 6 * mm),
        Paragraph('Total Amount Paid', styles['amount_label']),
        Paragraph(f"PHP {receipt_amount(req):,.2f}", styles['amount']),
        Spacer(1, 6 * mm),
        details,
        Spacer(1, 10 * mm),
        Paragraph(
            'This is an official receipt issued by Barangay Luna.<br/>'
            'For verification or inquiries, please contact:<br/>'
            f'<b>{contact_email}</b> | <b>{contact_phone}</b>',
            styles['note'],
        ),
        Spacer(1, 4 * mm),
        Paragraph(f"Generated on: {utc_now().strftime('%B %d, %Y %I:%M %p')} UTC", styles['note']),
    ]

    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=20 * mm, rightMargin=20 * mm,
                            topMargin=18 * mm, bottomMargin=18 * mm, title=RECEIPT_TITLE)
    doc.build(elements)
    return buffer.getvalue()
