"""
Loyalty program model.

Each tenant runs at most one active program. The program type decides which
state machine interprets a visit; `config` holds the type-specific settings
in free-form JSON (see services/program_config.py for the typed view).
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class ProgramType(str, Enum):
    """The eight loyalty mechanics."""
    STAMP_CARD = 'sellos'
    CASHBACK = 'cashback'
    MULTIPASS = 'multipase'
    TIERED_DISCOUNT = 'descuento'
    MEMBERSHIP = 'membresia'
    AFFILIATION = 'afiliacion'
    COUPON = 'cupon'
    GIFT_CARD = 'regalo'

    @classmethod
    def values(cls):
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value):
        """Return the enum member for `value`, or None if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


# A duplicate visit on these types ends processing (ALREADY_VISITED_TODAY).
SINGLE_VISIT_PER_DAY_TYPES = frozenset({
    ProgramType.STAMP_CARD,
    ProgramType.TIERED_DISCOUNT,
    ProgramType.MEMBERSHIP,
    ProgramType.AFFILIATION,
    ProgramType.COUPON,
})

# These model discrete transactions: a duplicate visit row does not stop the value transfer.
MULTI_VISIT_PER_DAY_TYPES = frozenset({
    ProgramType.CASHBACK,
    ProgramType.MULTIPASS,
    ProgramType.GIFT_CARD,
})


class Program(db.Model):
    """Tenant loyalty configuration."""
    __tablename__ = 'programs'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)

    name = db.Column(db.String(255))
    program_type = db.Column(db.String(20), nullable=False, default=ProgramType.STAMP_CARD.value)

    # Target count; meaning varies by type (stamps for sellos)
    goal = db.Column(db.Integer, nullable=False, default=10)
    reward_description = db.Column(db.String(500))

    # Type-specific settings: percentages, caps, tier tables, expiry, usage counts
    config = db.Column(db.JSON, default=dict)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index(
            'uq_programs_one_active_per_tenant',
            'tenant_id',
            unique=True,
            postgresql_where=db.text('is_active'),
            sqlite_where=db.text('is_active = 1'),
        ),
    )

    def __repr__(self):
        return f'<Program {self.id} {self.program_type}>'

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'tipo_programa': self.program_type,
            'puntos_meta': self.goal,
            'descripcion_premio': self.reward_description,
            'config': self.config or {},
            'is_active': self.is_active,
        }
