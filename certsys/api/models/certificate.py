"""Certificate model (issued-certificate log kept by the admin console)."""
from certsys.api import db
from certsys.api.models import new_id
from certsys.api.utils.time import utc_now, isoformat


class Certificate(db.Model):
    __tablename__ = 'certificates'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    certificate_type = db.Column(db.String(100), nullable=False)
    purpose = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, approved, rejected, completed
    requested_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    approved_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    approved_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'certificate_type': self.certificate_type,
            'purpose': self.purpose,
            'status': self.status,
            'requested_at': isoformat(self.requested_at),
            'approved_at': isoformat(self.approved_at),
            'completed_at': isoformat(self.completed_at),
            'notes': self.notes,
            'approved_by': self.approved_by,
            'users': self.user.summary() if self.user else None,
        }
