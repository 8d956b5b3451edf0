"""
Barangay Luna CertSys - Registration Review Routes
Purok chairmen review the self-registrations filed under them.
"""
from flask import Blueprint, request, jsonify, current_app

from certsys.api.models.pending_registration import PendingRegistration
from certsys.api.utils.auth import chairman_required
from certsys.api.utils.registration import approve_registration, reject_registration
from certsys.api.utils.security import APIError, error_500, remote_error_response
from certsys.api.utils.stores import get_store, invalidate
from certsys.api.utils.supabase_auth import SupabaseAuthError
from certsys.api.utils.validators import ValidationError

registrations_bp = Blueprint('registrations', __name__, url_prefix='/api/registrations')


def _pending_store(current_user):
    """Cached pending list; realtime events for this chairman are spliced in."""
    if current_user.is_admin:
        def fetch():
            rows = PendingRegistration.query.filter_by(status='pending')
            return [r.to_dict() for r in rows.order_by(PendingRegistration.created_at.desc()).all()]

        return get_store('pending_registrations', 'admin', fetch,
                         keep=lambda row: row.get('status') == 'pending',
                         normalize=PendingRegistration.shape_row)

    chairman_id = current_user.id

    def fetch():
        rows = PendingRegistration.query.filter_by(status='pending', purok_chairman_id=chairman_id)
        return [r.to_dict() for r in rows.order_by(PendingRegistration.created_at.desc()).all()]

    return get_store(
        'pending_registrations', chairman_id, fetch,
        keep=lambda row: row.get('purok_chairman_id') == chairman_id and row.get('status') == 'pending',
        normalize=PendingRegistration.shape_row,
    )


@registrations_bp.route('/pending', methods=['GET'])
@chairman_required
def list_pending(current_user):
    force = request.args.get('refresh') == '1'
    registrations = _pending_store(current_user).fetch(force=force) or []
    return jsonify({'registrations': registrations, 'count': len(registrations)}), 200


@registrations_bp.route('/<registration_id>/approve', methods=['POST'])
@chairman_required
def approve(registration_id, current_user):
    try:
        result = approve_registration(registration_id, current_user)
    except SupabaseAuthError as e:
        return remote_error_response(e)
    except APIError:
        raise
    except Exception as e:
        return error_500('Failed to approve registration', e)

    invalidate('pending_registrations', 'users', 'reports')
    current_app.logger.info(f"Registration {registration_id} approved by {current_user.id}")
    message = 'Registration approved'
    if not result['email_sent']:
        message += '. Email delivery failed; share the temporary password with the resident.'
    return jsonify({'message': message, **result}), 200


@registrations_bp.route('/<registration_id>/reject', methods=['POST'])
@chairman_required
def reject(registration_id, current_user):
    data = request.get_json(silent=True) or {}
    try:
        registration = reject_registration(registration_id, current_user, data.get('reason'))
    except ValidationError as e:
        return jsonify({'error': e.message, 'field': e.field}), 400

    invalidate('pending_registrations')
    return jsonify({'message': 'Registration rejected', 'registration': registration.to_dict()}), 200
