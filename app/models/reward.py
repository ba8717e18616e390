"""
Reward model - one-time redemption artifact (stamp-card goal, coupon).
"""
from datetime import datetime
from ..extensions import db


class Reward(db.Model):
    """Redeemable code issued to a customer."""
    __tablename__ = 'rewards'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False)

    code = db.Column(db.String(40), unique=True, nullable=False)  # PREMIO-XXXXXXXX / CUPON-XXXXXXXX
    description = db.Column(db.String(500))

    # Redemption is handled outside the visit engine
    redeemed = db.Column(db.Boolean, default=False)
    redeemed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Reward {self.code}>'

    def to_dict(self):
        return {
            'qr_code': self.code,
            'descripcion': self.description,
        }
