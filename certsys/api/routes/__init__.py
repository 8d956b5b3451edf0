"""API Routes - Import all blueprints here."""

from .auth import auth_bp
from .users import users_bp
from .registrations import registrations_bp
from .certificate_requests import certificate_requests_bp
from .certificates import certificates_bp
from .notifications import notifications_bp
from .reports import reports_bp
from .map import map_bp
from .realtime import realtime_bp
from .email import email_bp

__all__ = [
    'auth_bp',
    'users_bp',
    'registrations_bp',
    'certificate_requests_bp',
    'certificates_bp',
    'notifications_bp',
    'reports_bp',
    'map_bp',
    'realtime_bp',
    'email_bp',
]
