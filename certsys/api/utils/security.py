"""Security utilities for the CertSys API.

This module provides:
- Standardized error responses (safe for production)
- Image upload validation (Pillow-based content sniffing)
"""
import logging
from io import BytesIO
from typing import Optional, Set

from flask import jsonify, current_app, has_app_context
from PIL import Image, UnidentifiedImageError


# =============================================================================
# Standardized Error Responses
# =============================================================================

class APIError(Exception):
    """Base exception for API errors with safe error messages."""

    def __init__(self, message: str, code: str = None, status_code: int = 500, details: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or 'ERROR'
        self.status_code = status_code
        self.details = details  # Only shown in debug mode


def safe_error_response(
    message: str,
    exception: Optional[Exception] = None,
    status_code: int = 500,
    code: str = None,
    log_level: str = 'error'
) -> tuple:
    """
    Create a standardized, safe error response.

    In production only the safe message is returned and the full error is
    logged server-side. In debug mode the exception details are included.

    Args:
        message: Safe error message for clients
        exception: The caught exception (optional)
        status_code: HTTP status code
        code: Optional error code for client parsing
        log_level: Logging level ('error', 'warning', 'info')

    Returns:
        Tuple of (response, status_code)
    """
    response = {'error': message}

    if code:
        response['code'] = code

    logger = current_app.logger if has_app_context() else logging.getLogger(__name__)
    log_message = f"{message}"
    if exception:
        log_message += f": {type(exception).__name__}: {exception}"

    log_func = getattr(logger, log_level, logger.error)
    log_func(log_message)

    if has_app_context() and current_app.config.get('DEBUG') and exception:
        response['details'] = str(exception)
        response['exception_type'] = type(exception).__name__

    return jsonify(response), status_code


def error_500(message: str = "Internal server error", exception: Exception = None, code: str = None):
    """Internal server error (database write failed and was rolled back)."""
    return safe_error_response(message, exception, 500, code, 'error')


def error_502(message: str = "Upstream service error", exception: Exception = None, code: str = None):
    """A delegated service (auth, storage, email, directions) answered with an error."""
    return safe_error_response(message, exception, 502, code, 'error')


def error_503(message: str = "Service unavailable", exception: Exception = None, code: str = None):
    """A delegated service is not configured."""
    return safe_error_response(message, exception, 503, code or 'UNAVAILABLE', 'warning')


def error_504(message: str = "The request timed out. Please try again.", exception: Exception = None, code: str = None):
    """Remote call exceeded its timeout."""
    return safe_error_response(message, exception, 504, code or 'TIMEOUT', 'warning')


def remote_error_response(exception: Exception, message: str = None, code: str = None) -> tuple:
    """
    Response for a failed remote call.

    ``exception`` carries ``status_code`` and ``message`` (SupabaseAuthError,
    DirectionsError). Errors without a status are treated as 502.
    """
    status_code = getattr(exception, 'status_code', None) or 502
    message = message or getattr(exception, 'message', None) or str(exception)
    if status_code == 503:
        return error_503(message, exception, code)
    if status_code == 504:
        return error_504(message, exception, code)
    if status_code >= 500:
        return safe_error_response(message, exception, status_code, code, 'error')
    return safe_error_response(message, exception, status_code, code, 'warning')


# =============================================================================
# Image Validation
# =============================================================================

# Pillow format name -> MIME type
ALLOWED_IMAGE_FORMATS = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'WEBP': 'image/webp',
}

ALLOWED_IMAGE_EXTENSIONS: Set[str] = {'jpg', 'jpeg', 'png', 'webp'}


def validate_image_bytes(data: bytes, max_size_mb: int = 5) -> str:
    """
    Validate uploaded image content.

    Returns:
        Detected MIME type

    Raises:
        ValidationError: If the payload is empty, too large, or not an allowed image
    """
    from certsys.api.utils.validators import ValidationError

    if not data:
        raise ValidationError('file', 'File is empty')
    if len(data) > max_size_mb * 1024 * 1024:
        raise ValidationError('file', f'File size exceeds {max_size_mb}MB limit')

    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            fmt = (img.format or '').upper()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError('file', f'File is not a valid image: {e}')

    mime = ALLOWED_IMAGE_FORMATS.get(fmt)
    if not mime:
        raise ValidationError(
            'file',
            f'Image type not allowed. Detected: {fmt or "unknown"}. '
            f'Allowed: {", ".join(sorted(ALLOWED_IMAGE_FORMATS))}'
        )
    return mime
