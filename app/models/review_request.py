"""
Deferred review request model.

Written by the side-effect notifier after each admissible visit, timestamped
in the future; a scheduled job sends the due ones.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class ReviewRequestStatus(str, Enum):
    PENDING = 'pending'
    SENT = 'sent'
    FAILED = 'failed'


class ReviewRequest(db.Model):
    """Scheduled "how was your visit?" request."""
    __tablename__ = 'review_requests'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)

    scheduled_for = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=ReviewRequestStatus.PENDING.value)
    sent_at = db.Column(db.DateTime)
    error = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tenant = db.relationship('Tenant')
    customer = db.relationship('Customer')

    def __repr__(self):
        return f'<ReviewRequest customer={self.customer_id} status={self.status}>'

    @classmethod
    def get_due(cls, now: datetime = None, limit: int = 100):
        """Pending requests whose scheduled time has passed."""
        now = now or datetime.utcnow()
        return cls.query.filter(
            cls.status == ReviewRequestStatus.PENDING.value,
            cls.scheduled_for <= now
        ).order_by(cls.scheduled_for.asc()).limit(limit).all()

    def mark_sent(self):
        self.status = ReviewRequestStatus.SENT.value
        self.sent_at = datetime.utcnow()

    def mark_failed(self, error: str):
        self.status = ReviewRequestStatus.FAILED.value
        self.error = (error or '')[:500]

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'customer_id': self.customer_id,
            'scheduled_for': self.scheduled_for.isoformat() if self.scheduled_for else None,
            'status': self.status,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
        }
