"""Authentication helpers: current user lookup and role guards."""
from __future__ import annotations

from functools import wraps

from flask import jsonify
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity

from certsys.api import db
from certsys.api.models.user import User


def get_current_user() -> User | None:
    """Profile row of the authenticated Supabase user."""
    user_id = get_jwt_identity()
    if not user_id:
        return None
    return db.session.get(User, str(user_id))


def roles_required(*roles):
    """Require a valid token whose profile has one of ``roles``.

    The resolved user is passed to the view as ``current_user``.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user = get_current_user()
            if not user:
                return jsonify({'error': 'User profile not found'}), 404
            if roles and user.role not in roles:
                return jsonify({'error': 'You do not have permission to perform this action'}), 403
            kwargs['current_user'] = user
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def login_required(fn):
    return roles_required()(fn)


def admin_required(fn):
    return roles_required('admin')(fn)


def chairman_required(fn):
    """Purok chairmen and admins."""
    return roles_required('purok_chairman', 'admin')(fn)


def can_manage_user(actor: User, target: User) -> bool:
    """Admins manage everyone; chairmen manage their own residents."""
    if actor.is_admin:
        return True
    if actor.is_chairman:
        return target.purok_chairman_id == actor.id
    return actor.id == target.id
