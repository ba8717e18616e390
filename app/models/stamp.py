"""
Stamp (visit record) model.

One row per accepted visit attempt per calendar day. The unique constraint on
(customer, tenant, visit_date) is the idempotency guard for single-visit-per-day
program types.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class StampStatus(str, Enum):
    """Lifecycle of a visit row relative to its counter update."""
    PENDING = 'pending'          # Inserted, counters not yet applied
    APPLIED = 'applied'          # Counters applied in the visit transaction
    RECONCILED = 'reconciled'    # Counters applied later by the sweep
    DISCARDED = 'discarded'      # Sweep closed it without mutation


class Stamp(db.Model):
    """Audit and idempotency row for one visit day."""
    __tablename__ = 'stamps'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    visit_date = db.Column(db.Date, nullable=False)
    program_type = db.Column(db.String(20))
    status = db.Column(db.String(20), nullable=False, default=StampStatus.PENDING.value, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    applied_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint('customer_id', 'tenant_id', 'visit_date', name='uq_stamp_customer_tenant_day'),
    )

    def __repr__(self):
        return f'<Stamp customer={self.customer_id} date={self.visit_date} status={self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'tenant_id': self.tenant_id,
            'fecha': self.visit_date.isoformat() if self.visit_date else None,
            'tipo_programa': self.program_type,
            'status': self.status,
        }
