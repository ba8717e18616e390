"""
Customer model.

One row per (tenant, phone). Point fields are mutated only by the visit
engine and by reward redemption.
"""
from datetime import datetime
from ..extensions import db


class Customer(db.Model):
    """Loyalty customer of a tenant, identified by phone number."""
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    phone = db.Column(db.String(30), nullable=False)  # WhatsApp number, natural key
    name = db.Column(db.String(255))

    # Ledger counters
    current_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)
    rewards_redeemed = db.Column(db.Integer, nullable=False, default=0)

    # Gamification
    tier = db.Column(db.String(10), nullable=False, default='bronce')  # bronce, plata, oro
    streak = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    stamps = db.relationship('Stamp', backref='customer', lazy='dynamic')
    memberships = db.relationship('Membership', backref='customer', lazy='dynamic')
    rewards = db.relationship('Reward', backref='customer', lazy='dynamic')

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'phone', name='uq_tenant_customer_phone'),
        db.CheckConstraint('current_points <= lifetime_points', name='ck_customer_balance_within_lifetime'),
    )

    def __repr__(self):
        return f'<Customer {self.phone}>'

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'whatsapp': self.phone,
            'nombre': self.name,
            'puntos_actuales': self.current_points,
            'total_puntos_historicos': self.lifetime_points,
            'total_premios_canjeados': self.rewards_redeemed,
            'rango': self.tier,
            'racha': self.streak,
            'ultima_visita': self.last_visit_at.isoformat() if self.last_visit_at else None,
        }
