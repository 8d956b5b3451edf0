"""Notification helpers for request, payment and registration updates."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import current_app

from certsys.api import db
from certsys.api.models.notification import Notification
from certsys.api.models.user import User
from certsys.api.utils.time import format_notification_time

NOTIFICATION_TYPES = (
    'certificate_status',
    'payment',
    'system',
    'approval',
    'rejection',
    'reminder',
    'new_registration',
    'new_certificate_request',
)

LIST_LIMIT = 50

_ICONS = {
    'certificate_status': 'document-text',
    'payment': 'card',
    'approval': 'checkmark-circle',
    'rejection': 'close-circle',
    'reminder': 'time',
    'system': 'information-circle',
    'new_registration': 'person-add',
    'new_certificate_request': 'document',
}

_COLORS = {
    'approval': '#10b981',
    'rejection': '#ef4444',
    'payment': '#3b82f6',
    'reminder': '#f59e0b',
    'certificate_status': '#8b5cf6',
    'system': '#6366f1',
    'new_registration': '#10b981',
    'new_certificate_request': '#f59e0b',
}

STATUS_LABELS = {
    'pending': 'Pending',
    'in_progress': 'In Progress',
    'completed': 'Completed',
    'rejected': 'Rejected',
}


def notification_icon(notification_type: str) -> str:
    return _ICONS.get(notification_type, 'notifications')


def notification_color(notification_type: str) -> str:
    return _COLORS.get(notification_type, '#64748b')


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    """API shape: the row plus display helpers."""
    data = notification.to_dict()
    data['icon'] = notification_icon(notification.type)
    data['color'] = notification_color(notification.type)
    data['time_label'] = format_notification_time(notification.created_at) if notification.created_at else None
    return data


def create_notification(
    user_id: str,
    title: str,
    message: str,
    notification_type: str = 'system',
    related_certificate_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Notification:
    """Add a notification to the session; the caller commits."""
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f'Unknown notification type: {notification_type}')
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        related_certificate_id=related_certificate_id,
        meta=metadata or {},
    )
    db.session.add(notification)
    return notification


def notify_status_change(req, old_status: str, new_status: str) -> Optional[Notification]:
    if old_status == new_status:
        return None

    label = STATUS_LABELS.get(new_status, new_status.replace('_', ' ').title())
    if new_status == 'completed':
        notification_type = 'approval'
        title = 'Certificate Ready'
        message = f'Your {req.certificate_type} is ready for pick-up.'
    elif new_status == 'rejected':
        notification_type = 'rejection'
        title = 'Certificate Request Rejected'
        message = f'Your {req.certificate_type} request was rejected.'
        if req.notes:
            message += f' Reason: {req.notes}'
    else:
        notification_type = 'certificate_status'
        title = 'Certificate Request Updated'
        message = f'Your {req.certificate_type} request is now {label}.'

    return create_notification(
        req.user_id,
        title,
        message,
        notification_type,
        related_certificate_id=req.id,
        metadata={
            'certificate_type': req.certificate_type,
            'old_status': old_status,
            'new_status': new_status,
        },
    )


def notify_payment(req) -> Notification:
    amount = float(req.payment_amount) if req.payment_amount is not None else None
    if req.payment_status == 'paid':
        title = 'Payment Received'
        message = f'Payment for your {req.certificate_type} has been received.'
    else:
        title = 'Payment Update'
        message = f'Payment for your {req.certificate_type} is {req.payment_status}.'
    return create_notification(
        req.user_id,
        title,
        message,
        'payment',
        related_certificate_id=req.id,
        metadata={
            'certificate_type': req.certificate_type,
            'payment_amount': amount,
            'payment_method': req.payment_method,
            'payment_reference': req.payment_reference,
        },
    )


def notify_chairman_new_request(req, resident: User) -> Optional[Notification]:
    """Tell the resident's purok chairman about a new request."""
    if not resident.purok_chairman_id:
        current_app.logger.info("Resident %s has no purok chairman; request %s not announced", resident.id, req.id)
        return None
    return create_notification(
        resident.purok_chairman_id,
        'New Certificate Request',
        f'{resident.full_name} requested a {req.certificate_type}.',
        'new_certificate_request',
        related_certificate_id=req.id,
        metadata={
            'certificate_type': req.certificate_type,
            'resident_name': resident.full_name,
            'resident_id': resident.id,
            'purok': resident.purok,
        },
    )


def notify_new_registration(registration) -> Optional[Notification]:
    if not registration.purok_chairman_id:
        return None
    return create_notification(
        registration.purok_chairman_id,
        'New Registration',
        f'{registration.full_name} registered and is waiting for your approval.',
        'new_registration',
        metadata={
            'resident_name': registration.full_name,
            'purok': registration.purok,
            'registration_id': registration.id,
        },
    )


def list_notifications(user_id: str, limit: int = LIST_LIMIT) -> List[Dict[str, Any]]:
    rows = (
        Notification.query.filter_by(user_id=user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )
    return [serialize_notification(n) for n in rows]


def unread_count(user_id: str) -> int:
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


def mark_all_read(user_id: str) -> int:
    updated = (
        Notification.query.filter_by(user_id=user_id, is_read=False)
        .update({'is_read': True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
