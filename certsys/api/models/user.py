"""User profile model.

Rows mirror Supabase auth users: the primary key is the auth user UUID.
Passwords and sessions live in Supabase Auth, never here.
"""
from certsys.api import db
from certsys.api.utils.time import utc_now, isoformat
from sqlalchemy import Index


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)

    # Name
    full_name = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=True)
    middle_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    suffix = db.Column(db.String(20), nullable=True)

    # Role / purok assignment
    role = db.Column(db.String(20), nullable=False, default='resident')  # admin, purok_chairman, resident
    purok = db.Column(db.String(50), nullable=True)
    purok_chairman_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    # Contact
    phone_number = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    # Certificate fields
    date_of_birth = db.Column(db.Date, nullable=True)
    place_of_birth = db.Column(db.String(255), nullable=True)
    gender = db.Column(db.String(10), nullable=True)
    civil_status = db.Column(db.String(20), nullable=True)
    photo_url = db.Column(db.String(500), nullable=True)

    push_token = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    chairman = db.relationship('User', remote_side=[id], backref='residents')

    __table_args__ = (
        Index('idx_users_role', 'role'),
        Index('idx_users_purok_chairman', 'purok_chairman_id'),
    )

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    @property
    def is_chairman(self) -> bool:
        return self.role == 'purok_chairman'

    def to_dict(self, include_private=True):
        data = {
            'id': self.id,
            'full_name': self.full_name,
            'first_name': self.first_name,
            'middle_name': self.middle_name,
            'last_name': self.last_name,
            'suffix': self.suffix,
            'role': self.role,
            'purok': self.purok,
            'photo_url': self.photo_url,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_private:
            data.update({
                'email': self.email,
                'phone_number': self.phone_number,
                'address': self.address,
                'purok_chairman_id': self.purok_chairman_id,
                'date_of_birth': isoformat(self.date_of_birth),
                'place_of_birth': self.place_of_birth,
                'gender': self.gender,
                'civil_status': self.civil_status,
            })
        return data

    def summary(self):
        """Embedded form used when joining users onto other rows."""
        return {'full_name': self.full_name, 'email': self.email}
