"""
Barangay Luna CertSys - Notification Routes
In-app notification inbox for every role, plus admin broadcast.
"""
from flask import Blueprint, request, jsonify, current_app

from certsys.api import db
from certsys.api.models.notification import Notification
from certsys.api.models.user import User
from certsys.api.utils.auth import admin_required, login_required
from certsys.api.utils.notifications import (
    NOTIFICATION_TYPES,
    create_notification,
    list_notifications,
    mark_all_read,
    serialize_notification,
    unread_count,
)
from certsys.api.utils.stores import get_store, invalidate
from certsys.api.utils.validators import sanitize_string

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def _own(notification_id: str, current_user: User):
    notification = db.session.get(Notification, notification_id)
    if not notification or notification.user_id != current_user.id:
        return None
    return notification


@notifications_bp.route('', methods=['GET'])
@login_required
def get_notifications(current_user):
    user_id = current_user.id
    store = get_store('notifications', user_id, lambda: list_notifications(user_id))
    notifications = store.fetch(force=request.args.get('refresh') == '1') or []
    return jsonify({
        'notifications': notifications,
        'unread_count': unread_count(user_id),
    }), 200


@notifications_bp.route('/unread-count', methods=['GET'])
@login_required
def get_unread_count(current_user):
    return jsonify({'unread_count': unread_count(current_user.id)}), 200


@notifications_bp.route('/<notification_id>/read', methods=['POST', 'PATCH'])
@login_required
def mark_read(notification_id, current_user):
    notification = _own(notification_id, current_user)
    if not notification:
        return jsonify({'error': 'Notification not found'}), 404
    if not notification.is_read:
        notification.is_read = True
        db.session.commit()
        invalidate('notifications')
    return jsonify({'notification': serialize_notification(notification)}), 200


@notifications_bp.route('/read-all', methods=['POST'])
@login_required
def read_all(current_user):
    updated = mark_all_read(current_user.id)
    invalidate('notifications')
    return jsonify({'message': 'All notifications marked as read', 'updated': updated}), 200


@notifications_bp.route('/<notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id, current_user):
    notification = _own(notification_id, current_user)
    if not notification:
        return jsonify({'error': 'Notification not found'}), 404
    db.session.delete(notification)
    db.session.commit()
    invalidate('notifications')
    return jsonify({'message': 'Notification deleted'}), 200


@notifications_bp.route('', methods=['POST'])
@admin_required
def create(current_user):
    """Send a notification to one user, or to every user with ``user_id='all'``."""
    data = request.get_json(silent=True) or {}
    title = sanitize_string(data.get('title'))
    message = sanitize_string(data.get('message'), 2000)
    notification_type = data.get('type') or 'system'
    target = data.get('user_id')

    if not title or not message or not target:
        return jsonify({'error': 'user_id, title and message are required'}), 400
    if notification_type not in NOTIFICATION_TYPES:
        return jsonify({'error': f"Invalid notification type: {notification_type}", 'field': 'type'}), 400

    if target == 'all':
        recipients = [u.id for u in User.query.with_entities(User.id).all()]
    else:
        if not db.session.get(User, target):
            return jsonify({'error': 'User not found'}), 404
        recipients = [target]

    created = [
        create_notification(uid, title, message, notification_type,
                            related_certificate_id=data.get('related_certificate_id'),
                            metadata=data.get('metadata'))
        for uid in recipients
    ]
    db.session.commit()
    invalidate('notifications')
    current_app.logger.info(f"Admin {current_user.id} sent '{title}' to {len(created)} user(s)")
    return jsonify({
        'message': 'Notification sent',
        'count': len(created),
        'notifications': [n.to_dict() for n in created] if len(created) == 1 else [],
    }), 201
