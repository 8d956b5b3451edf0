"""Pending self-registration awaiting purok chairman review."""
from certsys.api import db
from certsys.api.models import new_id
from certsys.api.utils.time import utc_now, isoformat
from sqlalchemy import Index


class PendingRegistration(db.Model):
    __tablename__ = 'pending_registrations'

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    first_name = db.Column(db.String(100), nullable=False)
    middle_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=False)
    suffix = db.Column(db.String(20), nullable=True)

    date_of_birth = db.Column(db.Date, nullable=False)
    place_of_birth = db.Column(db.String(255), nullable=True)
    gender = db.Column(db.String(10), nullable=True)
    civil_status = db.Column(db.String(20), nullable=True)
    age = db.Column(db.Integer, nullable=True)

    purok = db.Column(db.String(50), nullable=True)
    house_number = db.Column(db.String(50), nullable=True)
    street = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    phone_number = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=False)

    purok_chairman_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, approved, rejected
    rejection_reason = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    approved_user_id = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_pending_reg_chairman_status', 'purok_chairman_id', 'status'),
        Index('idx_pending_reg_email', 'email'),
    )

    @staticmethod
    def compose_full_name(first_name, middle_name, last_name, suffix=None) -> str:
        parts = [first_name, middle_name, last_name]
        name = ' '.join(p.strip() for p in parts if p and p.strip())
        if suffix and suffix.strip():
            name = f"{name} {suffix.strip()}"
        return name

    @property
    def full_name(self) -> str:
        return self.compose_full_name(self.first_name, self.middle_name, self.last_name, self.suffix)

    @classmethod
    def shape_row(cls, row: dict) -> dict:
        """Give a raw table row (realtime payload) the keys of ``to_dict``."""
        shaped = {key: None for key in cls.__table__.columns.keys()}
        shaped.update({key: value for key, value in row.items() if key in shaped})
        shaped['full_name'] = cls.compose_full_name(
            shaped['first_name'], shaped['middle_name'], shaped['last_name'], shaped['suffix']
        )
        return shaped

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'middle_name': self.middle_name,
            'last_name': self.last_name,
            'suffix': self.suffix,
            'full_name': self.full_name,
            'date_of_birth': isoformat(self.date_of_birth),
            'place_of_birth': self.place_of_birth,
            'gender': self.gender,
            'civil_status': self.civil_status,
            'age': self.age,
            'purok': self.purok,
            'house_number': self.house_number,
            'street': self.street,
            'address': self.address,
            'phone_number': self.phone_number,
            'email': self.email,
            'purok_chairman_id': self.purok_chairman_id,
            'status': self.status,
            'rejection_reason': self.rejection_reason,
            'reviewed_by': self.reviewed_by,
            'reviewed_at': isoformat(self.reviewed_at),
            'approved_user_id': self.approved_user_id,
            'created_at': isoformat(self.created_at),
        }
