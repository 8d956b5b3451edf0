"""Certificate request model."""
from certsys.api import db
from certsys.api.models import new_id
from certsys.api.utils.time import utc_now, isoformat
from sqlalchemy import Index


class CertificateRequest(db.Model):
    __tablename__ = 'certificate_requests'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)

    # Request details
    certificate_type = db.Column(db.String(100), nullable=False)
    purpose = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, in_progress, completed, rejected
    notes = db.Column(db.Text, nullable=True)
    urgency = db.Column(db.String(20), nullable=False, default='regular')  # regular, rush, express
    quantity = db.Column(db.Integer, nullable=False, default=1)
    amount = db.Column(db.Numeric(10, 2), nullable=True)
    processed_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    # Generated certificate
    certificate_number = db.Column(db.String(20), unique=True, nullable=True)
    pdf_url = db.Column(db.String(500), nullable=True)
    pdf_generated_at = db.Column(db.DateTime, nullable=True)

    # Payment (written by the payment flow)
    payment_status = db.Column(db.String(20), nullable=False, default='unpaid')  # unpaid, pending, paid, failed
    payment_method = db.Column(db.String(30), nullable=True)
    payment_reference = db.Column(db.String(100), nullable=True)
    payment_amount = db.Column(db.Numeric(10, 2), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    user = db.relationship(
        'User',
        foreign_keys=[user_id],
        backref=db.backref('certificate_requests', lazy='dynamic', cascade='all, delete-orphan'),
    )
    processor = db.relationship('User', foreign_keys=[processed_by])

    __table_args__ = (
        Index('idx_cert_requests_user', 'user_id'),
        Index('idx_cert_requests_status', 'status'),
        Index('idx_cert_requests_created', 'created_at'),
    )

    def __repr__(self):
        return f'<CertificateRequest {self.id} {self.certificate_type} {self.status}>'

    def to_dict(self, include_user=True):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'certificate_type': self.certificate_type,
            'purpose': self.purpose,
            'status': self.status,
            'notes': self.notes,
            'urgency': self.urgency,
            'quantity': self.quantity,
            'amount': float(self.amount) if self.amount is not None else None,
            'processed_by': self.processed_by,
            'certificate_number': self.certificate_number,
            'pdf_url': self.pdf_url,
            'pdf_generated_at': isoformat(self.pdf_generated_at),
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'payment_reference': self.payment_reference,
            'payment_amount': float(self.payment_amount) if self.payment_amount is not None else None,
            'payment_date': isoformat(self.payment_date),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_user:
            data['users'] = self.user.summary() if self.user else None
            data['purok'] = self.user.purok if self.user else None
        return data
