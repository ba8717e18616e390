"""
Membership model - the generic wallet behind non-stamp program types.

- multipase: remaining_uses
- cashback / regalo: balance
- membresia: expires_at
- cupon: state flips to 'usado' on issuance

State transitions to expired/used are one-way.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class MembershipState(str, Enum):
    ACTIVE = 'activo'
    EXPIRED = 'expirado'
    USED = 'usado'


class Membership(db.Model):
    """Per (customer, tenant, program) usage / balance wallet."""
    __tablename__ = 'memberships'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False)

    state = db.Column(db.String(20), nullable=False, default=MembershipState.ACTIVE.value)
    remaining_uses = db.Column(db.Integer)  # NULL = not a usage-based wallet
    balance = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime)  # NULL = no expiry

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    program = db.relationship('Program')

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='ck_membership_balance_non_negative'),
        db.CheckConstraint(
            'remaining_uses IS NULL OR remaining_uses >= 0',
            name='ck_membership_uses_non_negative'
        ),
    )

    def __repr__(self):
        return f'<Membership {self.id} {self.state}>'

    @property
    def is_active(self) -> bool:
        return self.state == MembershipState.ACTIVE.value

    @property
    def is_past_expiry(self) -> bool:
        return self.expires_at is not None and self.expires_at < datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'tenant_id': self.tenant_id,
            'program_id': self.program_id,
            'estado': self.state,
            'usos_restantes': self.remaining_uses,
            'saldo': self.balance,
            'fecha_fin': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
