"""
Barangay Luna CertSys - User Routes
Profiles, profile photos, push tokens, chairman resident lists and admin
user management.
"""
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from certsys.api import db, limiter
from certsys.api.models.user import User
from certsys.api.utils.auth import admin_required, chairman_required, login_required, can_manage_user
from certsys.api.utils.security import APIError, error_500, error_502, remote_error_response, validate_image_bytes
from certsys.api.utils.stores import get_store, invalidate
from certsys.api.utils.supabase_auth import (
    SupabaseAuthError,
    admin_create_user,
    admin_delete_user,
    generate_temporary_password,
)
from certsys.api.utils.supabase_storage import SupabaseStorageError, upload_profile_photo
from certsys.api.utils.validators import (
    CIVIL_STATUSES,
    GENDERS,
    ROLES,
    ValidationError,
    sanitize_string,
    validate_choice,
    validate_date_of_birth,
    validate_email,
    validate_phone,
    validate_required_fields,
    validate_user_data,
)

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


def _limit(limit_string):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


PROFILE_TEXT_FIELDS = {
    'full_name': 255,
    'first_name': 100,
    'middle_name': 100,
    'last_name': 100,
    'suffix': 20,
    'address': 255,
    'place_of_birth': 255,
    'purok': 50,
}


def _apply_profile_fields(user: User, data: dict) -> None:
    """Copy editable profile fields from ``data`` onto ``user`` (validated)."""
    for field, max_length in PROFILE_TEXT_FIELDS.items():
        if field in data:
            setattr(user, field, sanitize_string(data.get(field), max_length))

    if 'phone_number' in data:
        user.phone_number = validate_phone(data['phone_number']) if data.get('phone_number') else None
    if 'date_of_birth' in data:
        user.date_of_birth = validate_date_of_birth(data['date_of_birth']) if data.get('date_of_birth') else None
    if 'gender' in data:
        user.gender = validate_choice('gender', data.get('gender'), GENDERS)
    if 'civil_status' in data:
        user.civil_status = validate_choice('civil_status', data.get('civil_status'), CIVIL_STATUSES)

    if not user.full_name:
        parts = [user.first_name, user.middle_name, user.last_name, user.suffix]
        user.full_name = ' '.join(p for p in parts if p) or None
    if not user.full_name:
        raise ValidationError('full_name', 'Full name is required')


# =============================================================================
# Own profile
# =============================================================================

@users_bp.route('/me', methods=['GET'])
@login_required
def get_me(current_user):
    return jsonify({'user': current_user.to_dict()}), 200


@users_bp.route('/me', methods=['PATCH', 'PUT'])
@login_required
def update_me(current_user):
    data = request.get_json(silent=True) or {}
    # Role and chairman assignment are admin-only
    data.pop('role', None)
    data.pop('purok_chairman_id', None)
    data.pop('email', None)

    try:
        _apply_profile_fields(current_user, data)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': e.message, 'field': e.field}), 400
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to update profile', e)

    invalidate('users')
    return jsonify({'message': 'Profile updated', 'user': current_user.to_dict()}), 200


@users_bp.route('/me/certificate-readiness', methods=['GET'])
@login_required
def certificate_readiness(current_user):
    """Whether the profile has every field a certificate needs."""
    missing = validate_user_data(current_user)
    return jsonify({'is_complete': not missing, 'missing_fields': missing}), 200


@users_bp.route('/me/photo', methods=['POST'])
@_limit("10 per hour")
@login_required
def upload_photo(current_user):
    file = request.files.get('photo') or request.files.get('file')
    if not file:
        return jsonify({'error': 'No photo uploaded'}), 400

    data = file.read()
    try:
        mime = validate_image_bytes(data, current_app.config.get('PROFILE_PHOTO_MAX_MB', 5))
    except ValidationError as e:
        return jsonify({'error': e.message, 'field': e.field}), 400

    try:
        url = upload_profile_photo(data, current_user.id, mime)
    except SupabaseStorageError as e:
        return error_502('Failed to upload photo', e)

    current_user.photo_url = url
    db.session.commit()
    invalidate('users')
    return jsonify({'message': 'Photo updated', 'photo_url': url}), 200


@users_bp.route('/me/push-token', methods=['PUT'])
@login_required
def save_push_token(current_user):
    data = request.get_json(silent=True) or {}
    token = sanitize_string(data.get('push_token'))
    if not token:
        return jsonify({'error': 'push_token is required'}), 400
    current_user.push_token = token
    db.session.commit()
    return jsonify({'message': 'Push token saved'}), 200


@users_bp.route('/my-chairman', methods=['GET'])
@login_required
def my_chairman(current_user):
    if not current_user.purok_chairman_id:
        return jsonify({'error': 'No purok chairman assigned'}), 404
    chairman = db.session.get(User, current_user.purok_chairman_id)
    if not chairman:
        return jsonify({'error': 'No purok chairman assigned'}), 404
    return jsonify({'chairman': {
        'id': chairman.id,
        'full_name': chairman.full_name,
        'email': chairman.email,
        'phone_number': chairman.phone_number,
        'purok': chairman.purok,
        'address': chairman.address,
        'photo_url': chairman.photo_url,
    }}), 200


# =============================================================================
# Chairman views
# =============================================================================

@users_bp.route('/residents', methods=['GET'])
@chairman_required
def list_residents(current_user):
    if current_user.is_admin:
        scope = 'residents:all'
        query = User.query.filter_by(role='resident')
    else:
        scope = f'residents:{current_user.id}'
        query = User.query.filter_by(role='resident', purok_chairman_id=current_user.id)

    def fetch():
        return [u.to_dict() for u in query.order_by(User.full_name.asc()).all()]

    residents = get_store('users', scope, fetch).fetch()
    return jsonify({'residents': residents, 'count': len(residents)}), 200


@users_bp.route('/<user_id>', methods=['GET'])
@login_required
def get_user(user_id, current_user):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if not can_manage_user(current_user, user):
        return jsonify({'error': 'You do not have permission to view this user'}), 403
    return jsonify({'user': user.to_dict()}), 200


# =============================================================================
# Admin management
# =============================================================================

@users_bp.route('', methods=['GET'])
@admin_required
def list_users(current_user):
    role = request.args.get('role')
    if role and role not in ROLES:
        return jsonify({'error': f"Invalid role: {role}"}), 400

    def fetch():
        query = User.query
        if role:
            query = query.filter_by(role=role)
        return [u.to_dict() for u in query.order_by(User.created_at.desc()).all()]

    users = get_store('users', f'admin:{role or "all"}', fetch).fetch(force=request.args.get('refresh') == '1')
    return jsonify({'users': users, 'count': len(users)}), 200


@users_bp.route('', methods=['POST'])
@admin_required
def create_user(current_user):
    """Create the auth user and profile; the generated password is returned once."""
    data = request.get_json(silent=True) or {}
    try:
        validate_required_fields(data, ('email', 'full_name', 'role'))
        email = validate_email(data['email'])
        role = validate_choice('role', data.get('role'), ROLES, required=True)
        chairman_id = data.get('purok_chairman_id')
        if chairman_id:
            chairman = db.session.get(User, chairman_id)
            if not chairman or chairman.role != 'purok_chairman':
                raise ValidationError('purok_chairman_id', 'Selected purok chairman does not exist')
    except ValidationError as e:
        return jsonify({'error': e.message, 'field': e.field}), 400

    if User.query.filter(db.func.lower(User.email) == email).first():
        return jsonify({'error': 'An account with this email already exists'}), 409

    password = data.get('password') or generate_temporary_password()
    try:
        auth_user = admin_create_user(email, password, {'full_name': data.get('full_name'), 'role': role})
    except SupabaseAuthError as e:
        return remote_error_response(e)

    user = User(id=auth_user.get('id'), email=email, role=role, purok_chairman_id=chairman_id or None)
    try:
        _apply_profile_fields(user, data)
        db.session.add(user)
        db.session.commit()
    except (ValidationError, SQLAlchemyError) as e:
        db.session.rollback()
        try:
            admin_delete_user(auth_user.get('id'))
        except SupabaseAuthError as cleanup_error:
            current_app.logger.error(f"Could not remove auth user {auth_user.get('id')}: {cleanup_error.message}")
        if isinstance(e, ValidationError):
            return jsonify({'error': e.message, 'field': e.field}), 400
        return error_500('Failed to create user', e)

    invalidate('users', 'reports')
    current_app.logger.info(f"Admin {current_user.id} created {role} {user.id}")
    return jsonify({'message': 'User created', 'user': user.to_dict(), 'password': password}), 201


@users_bp.route('/<user_id>', methods=['PATCH', 'PUT'])
@admin_required
def update_user(user_id, current_user):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        if 'role' in data:
            user.role = validate_choice('role', data.get('role'), ROLES, required=True)
        if 'purok_chairman_id' in data:
            chairman_id = data.get('purok_chairman_id') or None
            if chairman_id:
                chairman = db.session.get(User, chairman_id)
                if not chairman or chairman.role != 'purok_chairman':
                    raise ValidationError('purok_chairman_id', 'Selected purok chairman does not exist')
            user.purok_chairman_id = chairman_id
        _apply_profile_fields(user, data)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': e.message, 'field': e.field}), 400

    invalidate('users', 'reports')
    return jsonify({'message': 'User updated', 'user': user.to_dict()}), 200


@users_bp.route('/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id, current_user):
    if user_id == current_user.id:
        return jsonify({'error': 'You cannot delete your own account'}), 400
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    db.session.delete(user)
    db.session.commit()

    try:
        admin_delete_user(user_id)
    except SupabaseAuthError as e:
        current_app.logger.warning(f"Profile {user_id} deleted but auth user removal failed: {e.message}")
        raise APIError('Profile deleted, but the login account could not be removed', 'AUTH_DELETE_FAILED',
                       e.status_code if e.status_code >= 500 else 502, details=e.message)

    invalidate('users', 'reports', 'certificate_requests')
    return jsonify({'message': 'User deleted'}), 200
