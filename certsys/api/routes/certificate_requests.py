"""
Barangay Luna CertSys - Certificate Request Routes
Residents file requests; purok chairmen and admins process them, generate
the certificate PDF and record payments.
"""
from decimal import Decimal, InvalidOperation

from flask import Blueprint, Response, request, jsonify, current_app, redirect
from reportlab.platypus.doctemplate import LayoutError
from sqlalchemy.exc import SQLAlchemyError

from certsys.api import db, limiter
from certsys.api.models.certificate_request import CertificateRequest
from certsys.api.models.user import User
from certsys.api.utils.auth import chairman_required, login_required
from certsys.api.utils.certificate_generator import (
    CERTIFICATE_TYPES,
    build_certificate_data,
    generate_certificate_pdf,
    preview_certificate,
    render_certificate_html,
)
from certsys.api.utils.fees import calculate_fee, fee_schedule
from certsys.api.utils.html_printer import PrintError
from certsys.api.utils.notifications import notify_chairman_new_request, notify_payment, notify_status_change
from certsys.api.utils.receipt_generator import generate_receipt_pdf, receipt_number
from certsys.api.utils.security import error_500, error_502
from certsys.api.utils.stores import get_store, invalidate
from certsys.api.utils.supabase_storage import SupabaseStorageError, certificate_download_url
from certsys.api.utils.time import utc_now
from certsys.api.utils.validators import ValidationError, sanitize_string, validate_user_data

certificate_requests_bp = Blueprint('certificate_requests', __name__, url_prefix='/api/certificate-requests')

REQUEST_STATUSES = ('pending', 'in_progress', 'completed', 'rejected')
PAYMENT_STATUSES = ('unpaid', 'pending', 'paid', 'failed')


def _limit(limit_string):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


def _can_view(req: CertificateRequest, user: User) -> bool:
    if user.is_admin or req.user_id == user.id:
        return True
    return user.is_chairman and req.user is not None and req.user.purok_chairman_id == user.id


def _can_process(req: CertificateRequest, user: User) -> bool:
    if user.is_admin:
        return True
    return user.is_chairman and req.user is not None and req.user.purok_chairman_id == user.id


def _load(request_id: str, current_user: User, process: bool = False):
    """Return (request, None) or (None, error response)."""
    req = db.session.get(CertificateRequest, request_id)
    if not req:
        return None, (jsonify({'error': 'Certificate request not found'}), 404)
    allowed = _can_process(req, current_user) if process else _can_view(req, current_user)
    if not allowed:
        return None, (jsonify({'error': 'You do not have permission to access this request'}), 403)
    return req, None


@certificate_requests_bp.route('/fees', methods=['GET'])
def get_fees():
    return jsonify({'fees': fee_schedule()}), 200


@certificate_requests_bp.route('', methods=['GET'])
@login_required
def list_requests(current_user):
    """Own requests for residents, their residents' for chairmen, all for admins."""
    status = request.args.get('status')
    if status and status not in REQUEST_STATUSES:
        return jsonify({'error': f"Invalid status: {status}"}), 400

    if current_user.is_admin:
        user_id = request.args.get('user_id')
        scope = f"admin:{user_id or '*'}:{status or '*'}"

        def build_query():
            query = CertificateRequest.query
            if user_id:
                query = query.filter(CertificateRequest.user_id == user_id)
            return query
    elif current_user.is_chairman:
        scope = f"chairman:{current_user.id}:{status or '*'}"

        def build_query():
            return CertificateRequest.query.join(User, CertificateRequest.user_id == User.id).filter(
                User.purok_chairman_id == current_user.id
            )
    else:
        scope = f"user:{current_user.id}:{status or '*'}"

        def build_query():
            return CertificateRequest.query.filter(CertificateRequest.user_id == current_user.id)

    def fetch():
        query = build_query()
        if status:
            query = query.filter(CertificateRequest.status == status)
        return [r.to_dict() for r in query.order_by(CertificateRequest.created_at.desc()).all()]

    store = get_store('certificate_requests', scope, fetch)
    requests_data = store.fetch(force=request.args.get('refresh') == '1') or []
    return jsonify({'requests': requests_data, 'count': len(requests_data)}), 200


@certificate_requests_bp.route('', methods=['POST'])
@_limit("30 per hour")
@login_required
def create_request(current_user):
    data = request.get_json(silent=True) or {}
    certificate_type = sanitize_string(data.get('certificate_type'), 100)
    purpose = sanitize_string(data.get('purpose'))

    if not certificate_type or not purpose:
        return jsonify({'error': 'Certificate type and purpose are required'}), 400
    if certificate_type not in CERTIFICATE_TYPES:
        return jsonify({'error': f"Unsupported certificate type: {certificate_type}", 'field': 'certificate_type'}), 400

    try:
        fee = calculate_fee(data.get('urgency'), data.get('quantity'))
    except ValidationError as e:
        return jsonify({'error': e.message, 'field': e.field}), 400

    req = CertificateRequest(
        user_id=current_user.id,
        certificate_type=certificate_type,
        purpose=purpose,
        notes=sanitize_string(data.get('notes'), 2000),
        urgency=fee['urgency'],
        quantity=fee['quantity'],
        amount=fee['total'],
        status='pending',
        payment_status='unpaid',
    )
    try:
        db.session.add(req)
        db.session.flush()
        notify_chairman_new_request(req, current_user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to create certificate request', e)

    invalidate('certificate_requests', 'notifications', 'reports')
    response = {
        'message': 'Certificate request submitted',
        'request': req.to_dict(),
        'fee': {**fee, 'unit_fee': float(fee['unit_fee']), 'total': float(fee['total'])},
    }
    missing = validate_user_data(current_user)
    if missing:
        response['missing_profile_fields'] = missing
    return jsonify(response), 201


@certificate_requests_bp.route('/<request_id>', methods=['GET'])
@login_required
def get_request(request_id, current_user):
    req, error = _load(request_id, current_user)
    if error:
        return error
    return jsonify({'request': req.to_dict()}), 200


@certificate_requests_bp.route('/<request_id>', methods=['PATCH', 'PUT'])
@chairman_required
def update_request(request_id, current_user):
    req, error = _load(request_id, current_user, process=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    old_status = req.status
    new_status = data.get('status', old_status)
    if new_status not in REQUEST_STATUSES:
        return jsonify({'error': f"Invalid status: {new_status}", 'field': 'status'}), 400
    if new_status == 'rejected' and not (data.get('notes') or req.notes):
        return jsonify({'error': 'A reason is required when rejecting a request', 'field': 'notes'}), 400

    if 'notes' in data:
        req.notes = sanitize_string(data.get('notes'), 2000)
    req.status = new_status
    if new_status != old_status:
        req.processed_by = current_user.id

    try:
        notify_status_change(req, old_status, new_status)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to update certificate request', e)

    invalidate('certificate_requests', 'notifications', 'reports')
    return jsonify({'message': 'Certificate request updated', 'request': req.to_dict()}), 200


@certificate_requests_bp.route('/<request_id>', methods=['DELETE'])
@login_required
def delete_request(request_id, current_user):
    req, error = _load(request_id, current_user)
    if error:
        return error
    is_owner = req.user_id == current_user.id
    if not current_user.is_admin and not (is_owner and req.status == 'pending'):
        return jsonify({'error': 'Only pending requests can be cancelled by their owner'}), 403

    db.session.delete(req)
    db.session.commit()
    invalidate('certificate_requests', 'reports')
    return jsonify({'message': 'Certificate request deleted'}), 200


@certificate_requests_bp.route('/<request_id>/generate', methods=['POST'])
@_limit("30 per hour")
@chairman_required
def generate(request_id, current_user):
    req, error = _load(request_id, current_user, process=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    issued_by = sanitize_string(data.get('issued_by')) or current_app.config.get('BARANGAY_CAPTAIN')
    old_status = req.status
    result = generate_certificate_pdf(request_id, issued_by=issued_by)
    invalidate('certificate_requests', 'reports')

    if not result.success:
        status_code = 400 if (result.error or '').startswith('Missing required fields') else 502
        return jsonify(result.to_dict()), status_code

    req = db.session.get(CertificateRequest, request_id)
    if req.processed_by is None:
        req.processed_by = current_user.id
    notify_status_change(req, old_status, req.status)
    db.session.commit()
    invalidate('notifications')
    return jsonify({**result.to_dict(), 'request': req.to_dict()}), 200


@certificate_requests_bp.route('/<request_id>/pdf', methods=['GET'])
@login_required
def download_pdf(request_id, current_user):
    req, error = _load(request_id, current_user)
    if error:
        return error
    if not req.pdf_url:
        return jsonify({'error': 'Certificate has not been generated yet'}), 404
    try:
        url = certificate_download_url(req.pdf_url)
    except SupabaseStorageError as e:
        return error_502('Certificate download unavailable', e)
    return redirect(url, code=302)


@certificate_requests_bp.route('/<request_id>/preview', methods=['GET'])
@login_required
def preview(request_id, current_user):
    """Rendered certificate (HTML, or ?format=pdf) without storing anything."""
    req, error = _load(request_id, current_user)
    if error:
        return error

    missing = validate_user_data(req.user)
    if missing:
        return jsonify({
            'error': f"Missing required fields: {', '.join(missing)}",
            'missing_fields': missing,
        }), 400

    data = build_certificate_data(
        req.user,
        req.certificate_type,
        req.purpose,
        req.certificate_number or 'PREVIEW',
        issue_date=req.pdf_generated_at or utc_now(),
        issued_by=current_app.config.get('BARANGAY_CAPTAIN'),
    )
    if request.args.get('format') == 'pdf':
        try:
            pdf_bytes = preview_certificate(data)
        except PrintError as e:
            return error_500('Failed to generate PDF', e)
        return Response(pdf_bytes, mimetype='application/pdf',
                        headers={'Content-Disposition': f'inline; filename="preview-{request_id}.pdf"'})
    return Response(render_certificate_html(data), mimetype='text/html')


@certificate_requests_bp.route('/<request_id>/payment', methods=['POST'])
@login_required
def record_payment(request_id, current_user):
    """Record the payment gateway result for a request."""
    req, error = _load(request_id, current_user)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    payment_status = data.get('payment_status')
    if payment_status not in PAYMENT_STATUSES:
        return jsonify({'error': f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
                        'field': 'payment_status'}), 400
    if payment_status == 'paid' and not data.get('payment_reference'):
        return jsonify({'error': 'payment_reference is required for paid requests',
                        'field': 'payment_reference'}), 400

    amount = data.get('payment_amount')
    try:
        amount = Decimal(str(amount)) if amount not in (None, '') else req.amount
    except InvalidOperation:
        return jsonify({'error': 'payment_amount must be a number', 'field': 'payment_amount'}), 400
    if amount is not None and amount < 0:
        return jsonify({'error': 'payment_amount cannot be negative', 'field': 'payment_amount'}), 400

    req.payment_status = payment_status
    req.payment_method = sanitize_string(data.get('payment_method'), 30) or req.payment_method
    req.payment_reference = sanitize_string(data.get('payment_reference'), 100) or req.payment_reference
    req.payment_amount = amount
    if payment_status == 'paid':
        req.payment_date = utc_now()

    try:
        notify_payment(req)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to record payment', e)

    invalidate('certificate_requests', 'notifications', 'reports')
    return jsonify({'message': 'Payment recorded', 'request': req.to_dict()}), 200


@certificate_requests_bp.route('/<request_id>/receipt', methods=['GET'])
@login_required
def download_receipt(request_id, current_user):
    """Official payment receipt (PDF) for a paid request."""
    req, error = _load(request_id, current_user)
    if error:
        return error
    if req.payment_status != 'paid':
        return jsonify({'error': 'Receipt is only available for paid requests', 'code': 'NOT_PAID'}), 409
    try:
        pdf_bytes = generate_receipt_pdf(req)
    except LayoutError as e:
        return error_500('Failed to generate receipt', e)
    return Response(pdf_bytes, mimetype='application/pdf',
                    headers={'Content-Disposition': f'attachment; filename="receipt-{receipt_number(req)}.pdf"'})
