"""
Barangay Luna CertSys - Certificate Log Routes
The admin console's ``certificates`` table: list, create, update, delete.
"""
from flask import Blueprint, request, jsonify, current_app

from certsys.api import db
from certsys.api.models.certificate import Certificate
from certsys.api.models.user import User
from certsys.api.utils.auth import admin_required, login_required
from certsys.api.utils.stores import get_store, invalidate
from certsys.api.utils.time import utc_now
from certsys.api.utils.validators import sanitize_string

certificates_bp = Blueprint('certificates', __name__, url_prefix='/api/certificates')

CERTIFICATE_STATUSES = ('pending', 'approved', 'rejected', 'completed')


@certificates_bp.route('', methods=['GET'])
@login_required
def list_certificates(current_user):
    """Own certificates, or every certificate (optionally one user's) for admins."""
    user_id = current_user.id
    if current_user.is_admin:
        user_id = request.args.get('user_id')

    def fetch():
        query = Certificate.query
        if user_id:
            query = query.filter_by(user_id=user_id)
        return [c.to_dict() for c in query.order_by(Certificate.requested_at.desc()).all()]

    certificates = get_store('certificates', user_id or 'all', fetch).fetch()
    return jsonify({'certificates': certificates, 'count': len(certificates)}), 200


@certificates_bp.route('', methods=['POST'])
@login_required
def create_certificate(current_user):
    data = request.get_json(silent=True) or {}
    certificate_type = sanitize_string(data.get('certificate_type'), 100)
    purpose = sanitize_string(data.get('purpose'))
    if not certificate_type or not purpose:
        return jsonify({'error': 'Certificate type and purpose are required'}), 400

    user_id = current_user.id
    if current_user.is_admin and data.get('user_id'):
        if not db.session.get(User, data['user_id']):
            return jsonify({'error': 'User not found'}), 404
        user_id = data['user_id']

    certificate = Certificate(
        user_id=user_id,
        certificate_type=certificate_type,
        purpose=purpose,
        notes=sanitize_string(data.get('notes'), 2000),
        status='pending',
    )
    db.session.add(certificate)
    db.session.commit()
    invalidate('certificates')
    return jsonify({'message': 'Certificate created', 'certificate': certificate.to_dict()}), 201


@certificates_bp.route('/<certificate_id>', methods=['PATCH', 'PUT'])
@admin_required
def update_certificate(certificate_id, current_user):
    certificate = db.session.get(Certificate, certificate_id)
    if not certificate:
        return jsonify({'error': 'Certificate not found'}), 404

    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status is not None:
        if status not in CERTIFICATE_STATUSES:
            return jsonify({'error': f"Invalid status: {status}", 'field': 'status'}), 400
        if status != certificate.status:
            if status == 'approved':
                certificate.approved_at = utc_now()
                certificate.approved_by = current_user.id
            elif status == 'completed':
                certificate.completed_at = utc_now()
            certificate.status = status
    if 'notes' in data:
        certificate.notes = sanitize_string(data.get('notes'), 2000)
    if 'purpose' in data and data.get('purpose'):
        certificate.purpose = sanitize_string(data['purpose'])

    db.session.commit()
    invalidate('certificates')
    current_app.logger.info(f"Certificate {certificate_id} updated by {current_user.id}")
    return jsonify({'message': 'Certificate updated', 'certificate': certificate.to_dict()}), 200


@certificates_bp.route('/<certificate_id>', methods=['DELETE'])
@admin_required
def delete_certificate(certificate_id, current_user):
    certificate = db.session.get(Certificate, certificate_id)
    if not certificate:
        return jsonify({'error': 'Certificate not found'}), 404
    db.session.delete(certificate)
    db.session.commit()
    invalidate('certificates')
    return jsonify({'message': 'Certificate deleted'}), 200
