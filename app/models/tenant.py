"""
Tenant model for multi-tenant SaaS.
"""
from datetime import datetime
from ..extensions import db


class Tenant(db.Model):
    """
    Merchant using the Vuelve platform.
    Global table - shared across all tenants.

    Read-only to the visit engine: activation and geofence center are
    managed from the back-office.
    """
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)

    # Activation
    status = db.Column(db.String(20), default='trial')  # active, paused, trial
    trial_ends_at = db.Column(db.DateTime)

    # Geofence center (optional). No center = visits are never geofence-rejected.
    lat = db.Column(db.Float)
    lng = db.Column(db.Float)
    geofence_message = db.Column(db.String(255))

    # Settings (JSON for flexibility)
    settings = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    programs = db.relationship('Program', backref='tenant', lazy='dynamic')
    customers = db.relationship('Customer', backref='tenant', lazy='dynamic')

    def __repr__(self):
        return f'<Tenant {self.slug}>'

    @property
    def is_trial_expired(self) -> bool:
        return (
            self.status == 'trial'
            and self.trial_ends_at is not None
            and self.trial_ends_at < datetime.utcnow()
        )

    @property
    def accepts_visits(self) -> bool:
        """Paused tenants and expired trials cannot record visits."""
        if self.status == 'paused':
            return False
        return not self.is_trial_expired

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'status': self.status,
            'trial_ends_at': self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            'lat': self.lat,
            'lng': self.lng,
            'geofence_message': self.geofence_message,
        }
