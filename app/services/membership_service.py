"""
Membership service for activating wallet-backed programs.

Staff activate a prepaid pack (multipase), a VIP membership (membresia) or a
gift card (regalo) for a customer; the visit engine then consumes it.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.customer import Customer
from ..models.membership import Membership, MembershipState
from ..models.program import Program, ProgramType
from ..utils.errors import ErrorCode
from ..utils.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from .program_config import resolve_program_config
from .visit_handlers import round_half_up
from .visit_service import parse_purchase_amount

logger = logging.getLogger(__name__)

ACTIVATABLE_TYPES = frozenset({
    ProgramType.MULTIPASS,
    ProgramType.MEMBERSHIP,
    ProgramType.GIFT_CARD,
})

TYPE_LABELS = {
    ProgramType.MULTIPASS: 'Multipase',
    ProgramType.MEMBERSHIP: 'Membresía VIP',
    ProgramType.GIFT_CARD: 'Gift Card',
}


class MembershipService:
    """
    Usage:
        service = MembershipService(tenant_id)
        result = service.activate('+56911112222', amount=10000)
    """

    def __init__(self, tenant_id: int):
        self.tenant_id = tenant_id

    def _get_customer(self, phone: str) -> Customer:
        customer = Customer.query.filter_by(tenant_id=self.tenant_id, phone=phone).first()
        if not customer:
            raise NotFoundError('Cliente no encontrado', ErrorCode.CUSTOMER_NOT_FOUND)
        return customer

    def _get_program(self, program_id: Optional[int]) -> Program:
        query = Program.query.filter_by(tenant_id=self.tenant_id, is_active=True)
        if program_id:
            query = query.filter_by(id=program_id)
        program = query.first()
        if not program:
            raise NotFoundError('Programa no encontrado', ErrorCode.NO_ACTIVE_PROGRAM)
        return program

    def activate(
        self,
        phone: str,
        program_id: Optional[int] = None,
        amount=None,
        now: datetime = None
    ) -> Dict[str, Any]:
        """
        Create an active membership for the customer on the tenant's program.

        Args:
            phone: Customer WhatsApp number
            program_id: Specific active program (optional)
            amount: Gift card load amount (regalo only)

        Returns:
            Response payload with the created membership

        Raises:
            NotFoundError: Unknown customer or no active program
            ValidationError: Program type cannot be activated, or missing amount
            ConflictError: Customer already has an active membership
        """
        now = now or datetime.utcnow()
        customer = self._get_customer(phone)
        program = self._get_program(program_id)

        program_type = ProgramType.parse(program.program_type)
        if program_type not in ACTIVATABLE_TYPES:
            raise ValidationError(
                'Este programa no es de tipo membresía, multipase o gift card',
                ErrorCode.UNSUPPORTED_PROGRAM_TYPE,
            )

        existing = Membership.query.filter_by(
            customer_id=customer.id,
            program_id=program.id,
            state=MembershipState.ACTIVE.value,
        ).first()
        if existing:
            raise ConflictError(
                'El cliente ya tiene una membresía activa para este programa',
                ErrorCode.MEMBERSHIP_ALREADY_ACTIVE,
                extra={'membership_id': existing.id},
            )

        config = resolve_program_config(program)
        membership = Membership(
            customer_id=customer.id,
            tenant_id=self.tenant_id,
            program_id=program.id,
            state=MembershipState.ACTIVE.value,
            balance=0,
        )

        if program_type == ProgramType.MULTIPASS:
            membership.remaining_uses = config.uses
        elif program_type == ProgramType.MEMBERSHIP:
            membership.expires_at = now + timedelta(days=config.duration_days)
        else:
            load = parse_purchase_amount(amount)
            if load is None or load <= 0:
                raise ValidationError('Ingresa el monto de la gift card', ErrorCode.AMOUNT_REQUIRED)
            membership.balance = min(round_half_up(load), config.max_value)

        try:
            db.session.add(membership)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Error creating membership for customer {customer.id}: {e}')
            raise StoreError(original_error=e)

        logger.info(f'{program_type.value} membership {membership.id} activated for customer {customer.id}')

        return {
            'message': f'✅ {TYPE_LABELS[program_type]} activada para {customer.name or customer.phone}',
            'membership': membership.to_dict(),
            'tipo': program_type.value,
            'beneficios': list(getattr(config, 'benefits', ())),
            'usos_restantes': membership.remaining_uses,
            'saldo': membership.balance,
            'fecha_fin': membership.expires_at.isoformat() if membership.expires_at else None,
        }

    def list_active(self, phone: str) -> List[Dict[str, Any]]:
        """Active memberships of a customer, newest first."""
        customer = self._get_customer(phone)
        memberships = Membership.query.filter_by(
            customer_id=customer.id,
            tenant_id=self.tenant_id,
            state=MembershipState.ACTIVE.value,
        ).order_by(Membership.created_at.desc()).all()
        return [m.to_dict() for m in memberships]
