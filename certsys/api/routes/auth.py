"""
Barangay Luna CertSys - Authentication Routes
Login, session refresh, logout, self-registration and password change.

Credentials and sessions are owned by Supabase Auth; these routes proxy
GoTrue and attach the ``users`` profile row.

Security: login, refresh and register are rate limited against brute force
and spam registrations.
"""
from flask import Blueprint, request, jsonify, current_app

from certsys.api import db, limiter
from certsys.api.models.user import User
from certsys.api.utils.auth import login_required
from certsys.api.utils.registration import register_resident
from certsys.api.utils.security import APIError, error_500, remote_error_response
from certsys.api.utils.stores import invalidate
from certsys.api.utils.supabase_auth import (
    SupabaseAuthError,
    refresh_session,
    sign_in_with_password,
    sign_out,
    update_password,
)
from certsys.api.utils.validators import ValidationError, validate_password

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


# Rate limiting helper - applies limiter if available
def _limit(limit_string):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


def _bearer_token() -> str | None:
    header = request.headers.get('Authorization') or ''
    if not header.lower().startswith('bearer '):
        return None
    return header.split(' ', 1)[1].strip() or None


def _session_payload(session: dict, user: User) -> dict:
    return {
        'access_token': session.get('access_token'),
        'refresh_token': session.get('refresh_token'),
        'expires_in': session.get('expires_in'),
        'expires_at': session.get('expires_at'),
        'token_type': session.get('token_type', 'bearer'),
        'user': user.to_dict(),
    }


@auth_bp.route('/login', methods=['POST'])
@_limit("10 per minute")
def login():
    """Sign in with email and password; returns the Supabase session and profile."""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    try:
        session = sign_in_with_password(email, password)
    except SupabaseAuthError as e:
        if e.status_code in (400, 401):
            return jsonify({'error': 'Invalid email or password'}), 401
        return remote_error_response(e)

    user_id = (session.get('user') or {}).get('id')
    user = db.session.get(User, user_id) if user_id else None
    if not user:
        current_app.logger.warning(f"Auth user {user_id} has no profile row")
        return jsonify({'error': 'User profile not found'}), 404

    return jsonify({'message': 'Login successful', **_session_payload(session, user)}), 200


@auth_bp.route('/refresh', methods=['POST'])
@_limit("30 per minute")
def refresh():
    data = request.get_json(silent=True) or {}
    refresh_token = data.get('refresh_token')
    if not refresh_token:
        return jsonify({'error': 'Refresh token is required', 'should_reauth': True}), 401

    try:
        session = refresh_session(refresh_token)
    except SupabaseAuthError as e:
        if e.status_code >= 500:
            return remote_error_response(e)
        # Invalid or already-used refresh token: the client must sign in again
        return jsonify({'error': 'Session expired. Please log in again.', 'should_reauth': True}), 401

    user = db.session.get(User, (session.get('user') or {}).get('id'))
    if not user:
        return jsonify({'error': 'User profile not found', 'should_reauth': True}), 401
    return jsonify(_session_payload(session, user)), 200


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout(current_user):
    token = _bearer_token()
    try:
        sign_out(token)
    except SupabaseAuthError as e:
        # The local session is discarded by the client either way
        current_app.logger.warning(f"Supabase sign-out failed for {current_user.id}: {e.message}")
    return jsonify({'message': 'Logged out'}), 200


@auth_bp.route('/me', methods=['GET'])
@login_required
def me(current_user):
    return jsonify({'user': current_user.to_dict()}), 200


@auth_bp.route('/change-password', methods=['POST'])
@_limit("5 per minute")
@login_required
def change_password(current_user):
    data = request.get_json(silent=True) or {}
    current_password = data.get('current_password')
    new_password = data.get('new_password')
    if not current_password or not new_password:
        return jsonify({'error': 'Current and new password are required'}), 400

    try:
        validate_password(new_password)
    except ValidationError as e:
        return jsonify({'error': e.message, 'field': e.field}), 400
    if new_password == current_password:
        return jsonify({'error': 'New password must be different from the current password'}), 400

    try:
        sign_in_with_password(current_user.email, current_password)
    except SupabaseAuthError as e:
        if e.status_code in (400, 401):
            return jsonify({'error': 'Current password is incorrect'}), 401
        return remote_error_response(e)

    try:
        update_password(_bearer_token(), new_password)
    except SupabaseAuthError as e:
        return remote_error_response(e)

    return jsonify({'message': 'Password updated successfully'}), 200


@auth_bp.route('/register', methods=['POST'])
@_limit("5 per hour")
def register():
    """Public self-registration; the chosen purok chairman approves it."""
    data = request.get_json(silent=True) or {}
    try:
        registration = register_resident(data)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': e.message, 'field': e.field}), 400
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        return error_500('Registration failed', e)

    invalidate('pending_registrations', 'notifications')
    current_app.logger.info(f"Registration {registration.id} submitted for chairman {registration.purok_chairman_id}")
    return jsonify({
        'message': 'Registration submitted. Your purok chairman will review it shortly.',
        'registration': registration.to_dict(),
    }), 201


@auth_bp.route('/chairmen', methods=['GET'])
def list_chairmen():
    """Purok chairmen a resident can register under."""
    chairmen = User.query.filter_by(role='purok_chairman').order_by(User.purok.asc(), User.full_name.asc()).all()
    return jsonify({
        'chairmen': [
            {'id': c.id, 'full_name': c.full_name, 'purok': c.purok}
            for c in chairmen
        ]
    }), 200
