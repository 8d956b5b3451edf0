"""
Barangay Luna CertSys - Email Routes
Admin check that the transactional email provider is configured.
"""
from flask import Blueprint, request, jsonify, current_app

from certsys.api import limiter
from certsys.api.utils.auth import admin_required
from certsys.api.utils.email_sender import send_test_email
from certsys.api.utils.validators import ValidationError, validate_email

email_bp = Blueprint('email', __name__, url_prefix='/api/email')


def _limit(limit_string):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


@email_bp.route('/test', methods=['POST'])
@_limit("10 per hour")
@admin_required
def test_email(current_user):
    data = request.get_json(silent=True) or {}
    try:
        to_email = validate_email(data.get('email') or current_user.email)
    except ValidationError as e:
        return jsonify({'error': e.message, 'field': e.field}), 400

    result = send_test_email(to_email)
    if not result.success:
        current_app.logger.warning(f"Test email to {to_email} failed: {result.error}")
        return jsonify(result.to_dict()), 502
    return jsonify({**result.to_dict(), 'message': f'Test email sent to {to_email}'}), 200
