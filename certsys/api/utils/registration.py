"""
Resident self-registration and purok chairman review.

register_resident -> PendingRegistration (status 'pending')
approve_registration -> Supabase auth user + users profile, password email
reject_registration -> status 'rejected' with reason

Approval is not undone when the password email fails: the result carries
``email_sent=False``, the email error and the temporary password so the
chairman can hand it over in person.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from certsys.api import db
from certsys.api.models.pending_registration import PendingRegistration
from certsys.api.models.user import User
from certsys.api.utils.email_sender import send_password_email
from certsys.api.utils.notifications import notify_new_registration
from certsys.api.utils.security import APIError
from certsys.api.utils.supabase_auth import (
    SupabaseAuthError,
    admin_create_user,
    admin_delete_user,
    generate_temporary_password,
)
from certsys.api.utils.time import utc_now, utc_today
from certsys.api.utils.validators import (
    CIVIL_STATUSES,
    GENDERS,
    ValidationError,
    calculate_age,
    sanitize_string,
    validate_choice,
    validate_date_of_birth,
    validate_email,
    validate_phone,
    validate_required_fields,
)

logger = logging.getLogger(__name__)

REGISTRATION_REQUIRED = ('first_name', 'last_name', 'date_of_birth', 'email', 'purok_chairman_id')


def _compose_address(house_number, street, purok) -> str | None:
    parts = [p for p in (house_number, street, purok) if p]
    return ', '.join(parts) if parts else None


def register_resident(data: Dict[str, Any]) -> PendingRegistration:
    """Validate and store a registration for the chosen chairman (caller commits)."""
    validate_required_fields(data, REGISTRATION_REQUIRED)

    email = validate_email(data.get('email'))
    phone = validate_phone(data['phone_number']) if data.get('phone_number') else None
    dob = validate_date_of_birth(data.get('date_of_birth'))
    gender = validate_choice('gender', data.get('gender'), GENDERS)
    civil_status = validate_choice('civil_status', data.get('civil_status'), CIVIL_STATUSES)

    chairman = db.session.get(User, str(data['purok_chairman_id']))
    if not chairman or chairman.role != 'purok_chairman':
        raise ValidationError('purok_chairman_id', 'Selected purok chairman does not exist')

    if User.query.filter(db.func.lower(User.email) == email).first():
        raise APIError('An account with this email already exists', 'EMAIL_EXISTS', 409)
    duplicate = PendingRegistration.query.filter(
        db.func.lower(PendingRegistration.email) == email,
        PendingRegistration.status == 'pending',
    ).first()
    if duplicate:
        raise APIError('A registration with this email is already awaiting approval', 'REGISTRATION_PENDING', 409)

    house_number = sanitize_string(data.get('house_number'), 50)
    street = sanitize_string(data.get('street'))
    purok = sanitize_string(data.get('purok'), 50) or chairman.purok

    registration = PendingRegistration(
        first_name=sanitize_string(data.get('first_name'), 100),
        middle_name=sanitize_string(data.get('middle_name'), 100),
        last_name=sanitize_string(data.get('last_name'), 100),
        suffix=sanitize_string(data.get('suffix'), 20),
        date_of_birth=dob,
        place_of_birth=sanitize_string(data.get('place_of_birth')),
        gender=gender,
        civil_status=civil_status,
        age=calculate_age(dob, utc_today()),
        purok=purok,
        house_number=house_number,
        street=street,
        address=sanitize_string(data.get('address')) or _compose_address(house_number, street, purok),
        phone_number=phone,
        email=email,
        purok_chairman_id=chairman.id,
        status='pending',
    )
    db.session.add(registration)
    db.session.flush()
    notify_new_registration(registration)
    return registration


def _reviewable(registration_id: str, reviewer: User) -> PendingRegistration:
    registration = db.session.get(PendingRegistration, registration_id)
    if not registration:
        raise APIError('Registration not found', 'NOT_FOUND', 404)
    if not reviewer.is_admin and registration.purok_chairman_id != reviewer.id:
        raise APIError('This registration is assigned to another purok chairman', 'FORBIDDEN', 403)
    if registration.status != 'pending':
        raise APIError(f'Registration has already been {registration.status}', 'ALREADY_PROCESSED', 409)
    return registration


def approve_registration(registration_id: str, reviewer: User) -> Dict[str, Any]:
    registration = _reviewable(registration_id, reviewer)
    temporary_password = generate_temporary_password()

    auth_user = admin_create_user(registration.email, temporary_password, {
        'full_name': registration.full_name,
        'role': 'resident',
    })
    user_id = auth_user.get('id') or (auth_user.get('user') or {}).get('id')
    if not user_id:
        raise SupabaseAuthError('Auth service did not return a user id', 502)

    user = User(
        id=user_id,
        email=registration.email,
        full_name=registration.full_name,
        first_name=registration.first_name,
        middle_name=registration.middle_name,
        last_name=registration.last_name,
        suffix=registration.suffix,
        role='resident',
        purok=registration.purok,
        purok_chairman_id=registration.purok_chairman_id,
        phone_number=registration.phone_number,
        address=registration.address,
        date_of_birth=registration.date_of_birth,
        place_of_birth=registration.place_of_birth,
        gender=registration.gender,
        civil_status=registration.civil_status,
    )
    db.session.add(user)
    registration.status = 'approved'
    registration.reviewed_by = reviewer.id
    registration.reviewed_at = utc_now()
    registration.approved_user_id = user_id
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        # Do not leave an auth user without a profile behind
        try:
            admin_delete_user(user_id)
        except SupabaseAuthError as cleanup_error:
            logger.error("Could not remove auth user %s after failed approval: %s", user_id, cleanup_error)
        raise

    email_result = send_password_email(registration.email, registration.full_name, temporary_password)
    result = {
        'registration': registration.to_dict(),
        'user': user.to_dict(),
        'email_sent': email_result.success,
    }
    if not email_result.success:
        logger.warning("Approval email to %s failed: %s", registration.email, email_result.error)
        result['email_error'] = email_result.error
        result['temporary_password'] = temporary_password
    return result


def reject_registration(registration_id: str, reviewer: User, reason: str) -> PendingRegistration:
    reason = sanitize_string(reason, 1000)
    if not reason:
        raise ValidationError('reason', 'A rejection reason is required')
    registration = _reviewable(registration_id, reviewer)
    registration.status = 'rejected'
    registration.rejection_reason = reason
    registration.reviewed_by = reviewer.id
    registration.reviewed_at = utc_now()
    db.session.commit()
    return registration
