"""
Visit dispatcher.

Entry point of the visit engine: admission checks (customer, tenant, active
program, geofence), config resolution and delegation to exactly one
program-type handler. Performs no ledger writes itself.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import current_app

from ..models.program import ProgramType
from ..utils.errors import ErrorCode
from ..utils.exceptions import NotFoundError, PolicyError, ValidationError
from .gamification_service import GamificationSettings
from .geofence import DEFAULT_RADIUS_METERS, check_geofence
from .ledger import LedgerStore
from .notification_service import NotificationService
from .program_config import resolve_config
from .visit_handlers import CustomerSnapshot, VisitContext, VisitOutcome, get_handler

logger = logging.getLogger(__name__)


def parse_purchase_amount(value) -> Optional[Decimal]:
    """
    Parse an optional purchase amount.

    Returns:
        Decimal amount, or None when absent

    Raises:
        ValidationError: INVALID_FIELD for non-numeric or non-finite input
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError('Monto de compra inválido', ErrorCode.INVALID_FIELD)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError('Monto de compra inválido', ErrorCode.INVALID_FIELD)
    if not amount.is_finite():
        raise ValidationError('Monto de compra inválido', ErrorCode.INVALID_FIELD)
    return amount


class VisitService:
    """
    Usage:
        service = VisitService()
        outcome = service.process_visit(tenant_id, '+56911112222', purchase_amount=5000)
        body, status = outcome.to_response()
    """

    def __init__(self, ledger: LedgerStore = None, notifier: NotificationService = None):
        self.ledger = ledger or LedgerStore()
        self.notifier = notifier or NotificationService.from_app(current_app)

    def process_visit(
        self,
        tenant_id: int,
        phone: str,
        purchase_amount=None,
        client_lat=None,
        client_lng=None,
        now: datetime = None
    ) -> VisitOutcome:
        """
        Record one visit.

        Raises:
            LoyaltyError: every rejection, with a stable code and HTTP status
        """
        now = now or datetime.utcnow()
        amount = parse_purchase_amount(purchase_amount)

        customer = self.ledger.find_customer(tenant_id, phone)
        if customer is None:
            if self.ledger.find_tenant(tenant_id) is None:
                raise NotFoundError('Negocio no encontrado', ErrorCode.TENANT_NOT_FOUND)
            raise NotFoundError('Cliente no encontrado. ¿Ya te registraste?', ErrorCode.CUSTOMER_NOT_FOUND)

        tenant = customer.tenant
        if not tenant.accepts_visits:
            raise PolicyError('Este negocio no está recibiendo visitas por ahora', ErrorCode.TENANT_INACTIVE)

        program = self.ledger.find_active_program(tenant_id)
        if program is None:
            raise NotFoundError('Este negocio no tiene un programa activo', ErrorCode.NO_ACTIVE_PROGRAM)

        check_geofence(
            tenant.lat,
            tenant.lng,
            client_lat,
            client_lng,
            radius_meters=current_app.config.get('GEOFENCE_RADIUS_METERS', DEFAULT_RADIUS_METERS),
            too_far_message=tenant.geofence_message,
        )

        program_type = ProgramType.parse(program.program_type or ProgramType.STAMP_CARD.value)
        handler = get_handler(program_type, self.ledger) if program_type else None
        if handler is None:
            raise ValidationError(
                f'Tipo de programa no soportado: {program.program_type}',
                ErrorCode.UNSUPPORTED_PROGRAM_TYPE,
            )

        ctx = VisitContext(
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            tenant_name=tenant.name,
            customer=CustomerSnapshot.from_customer(customer),
            program_id=program.id,
            program_type=program_type,
            config=resolve_config(
                program.config,
                program_type,
                goal=program.goal,
                reward_description=program.reward_description,
            ),
            now=now,
            purchase_amount=amount,
            gamification_settings=GamificationSettings.from_config(current_app.config),
        )

        outcome = handler.apply(ctx)

        if outcome.duplicate:
            logger.info(f'Duplicate {program_type.value} visit for customer {customer.id} (tenant {tenant_id})')
        else:
            logger.info(f'{program_type.value} visit recorded for customer {customer.id} (tenant {tenant_id})')
            self.notifier.notify_visit(ctx, outcome)

        return outcome
