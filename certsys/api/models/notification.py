"""In-app notification model."""
from certsys.api import db
from certsys.api.models import new_id
from certsys.api.utils.time import utc_now, isoformat


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    # certificate_status, payment, system, approval, rejection, reminder,
    # new_registration, new_certificate_request
    type = db.Column(db.String(40), nullable=False, default='system')
    related_certificate_id = db.Column(
        db.String(36), db.ForeignKey('certificate_requests.id', ondelete='SET NULL'), nullable=True
    )
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative models
    meta = db.Column('metadata', db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.Index('ix_notifications_user_created', 'user_id', 'created_at'),
        db.Index('ix_notifications_user_unread', 'user_id', 'is_read'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'related_certificate_id': self.related_certificate_id,
            'is_read': self.is_read,
            'metadata': self.meta,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
