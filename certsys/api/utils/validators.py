"""Input validation helpers."""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, Iterable, List

from certsys.api.utils.time import parse_date, utc_today


class ValidationError(Exception):
    """Raised when a single input field fails validation."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
# 09XXXXXXXXX or +639XXXXXXXXX
PHONE_RE = re.compile(r'^(09\d{9}|\+639\d{9})$')

ROLES = ('admin', 'purok_chairman', 'resident')
GENDERS = ('Male', 'Female', 'Other')
CIVIL_STATUSES = ('Single', 'Married', 'Widowed', 'Divorced', 'Separated')

# Profile fields a certificate cannot be issued without, with display labels
REQUIRED_CERTIFICATE_FIELDS = (
    ('full_name', 'Full Name'),
    ('address', 'Address'),
    ('date_of_birth', 'Date of Birth'),
    ('place_of_birth', 'Place of Birth'),
    ('gender', 'Gender'),
    ('civil_status', 'Civil Status'),
)


def _field(record: Any, name: str):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_user_data(user: Any) -> List[str]:
    """Return the labels of required certificate fields missing from a user record."""
    return [label for name, label in REQUIRED_CERTIFICATE_FIELDS if _is_blank(_field(user, name))]


def validate_required_fields(data: Dict[str, Any], fields: Iterable[str]) -> None:
    missing = [f for f in fields if _is_blank((data or {}).get(f))]
    if missing:
        raise ValidationError(missing[0], f"Missing required fields: {', '.join(missing)}")


def validate_email(email: str) -> str:
    value = (email or '').strip().lower()
    if not EMAIL_RE.match(value):
        raise ValidationError('email', 'Invalid email address')
    return value


def validate_phone(phone: str) -> str:
    value = re.sub(r'[\s-]', '', phone or '')
    if not PHONE_RE.match(value):
        raise ValidationError('phone_number', 'Phone number must be in 09XXXXXXXXX format')
    return value


def validate_date_of_birth(value) -> date:
    try:
        dob = parse_date(value)
    except ValueError:
        raise ValidationError('date_of_birth', 'Date of birth must be in YYYY-MM-DD format')
    if dob is None:
        raise ValidationError('date_of_birth', 'Date of birth is required')
    if dob > utc_today():
        raise ValidationError('date_of_birth', 'Date of birth cannot be in the future')
    return dob


def validate_choice(field: str, value, choices: Iterable[str], required: bool = False):
    if _is_blank(value):
        if required:
            raise ValidationError(field, f'{field} is required')
        return None
    if value not in choices:
        raise ValidationError(field, f"Must be one of: {', '.join(choices)}")
    return value


def validate_password(password: str) -> str:
    if not password or len(password) < 8:
        raise ValidationError('password', 'Password must be at least 8 characters long')
    return password


def sanitize_string(value, max_length: int = 255) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned[:max_length] if cleaned else None


def calculate_age(dob: date, today: date | None = None) -> int:
    today = today or utc_today()
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))
