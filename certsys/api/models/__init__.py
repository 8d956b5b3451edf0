"""
Barangay Luna CertSys - Database Models
Import all models here for Flask-Migrate to detect them
"""
import uuid

from certsys.api import db

Base = db.Model


def new_id() -> str:
    """Supabase-style UUID primary key."""
    return str(uuid.uuid4())


from .user import User
from .certificate import Certificate
from .certificate_request import CertificateRequest
from .notification import Notification
from .pending_registration import PendingRegistration

__all__ = [
    'new_id',
    'User',
    'Certificate',
    'CertificateRequest',
    'Notification',
    'PendingRegistration',
]
