"""Utility functions for the API.

Only model-free helpers are re-exported here; models import from this
package, so anything touching models is imported from its own module.
"""

from .validators import (
    validate_email,
    validate_password,
    validate_phone,
    validate_date_of_birth,
    validate_required_fields,
    validate_user_data,
    sanitize_string,
    ValidationError,
)

from .security import (
    APIError,
    safe_error_response,
    validate_image_bytes,
)

from .time import utc_now, utc_today

__all__ = [
    'validate_email',
    'validate_password',
    'validate_phone',
    'validate_date_of_birth',
    'validate_required_fields',
    'validate_user_data',
    'sanitize_string',
    'ValidationError',
    'APIError',
    'safe_error_response',
    'validate_image_bytes',
    'utc_now',
    'utc_today',
]
