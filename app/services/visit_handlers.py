"""
Program-type handlers.

One handler per loyalty mechanic behind a common interface:

    handler.apply(ctx) -> VisitOutcome
    handler.reconcile_orphan(stamp, customer, settings) -> StampStatus

Selected through the HANDLERS table by the visit dispatcher. Handlers raise
LoyaltyError subclasses for every rejection; the HTTP layer renders them.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Type

from ..models.customer import Customer
from ..models.membership import Membership, MembershipState
from ..models.program import ProgramType, SINGLE_VISIT_PER_DAY_TYPES
from ..models.stamp import Stamp, StampStatus
from ..utils.errors import ErrorCode
from ..utils.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from .gamification_service import GamificationSettings, refresh_with_settings
from .ledger import LedgerStore
from .program_config import DiscountLevel, resolve_program_config
from .reward_service import RewardIssuer, COUPON_CODE_PREFIX

logger = logging.getLogger(__name__)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def plain_number(value: Optional[Decimal]):
    """Decimal -> int when integral, float otherwise (JSON friendly)."""
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# ==================== Visit context / outcome ====================

@dataclass(frozen=True)
class CustomerSnapshot:
    """Pre-visit view of the customer row."""
    id: int
    phone: str
    name: Optional[str]
    current_points: int
    lifetime_points: int
    tier: str
    streak: int
    last_visit_at: Optional[datetime]

    @classmethod
    def from_customer(cls, customer: Customer) -> 'CustomerSnapshot':
        return cls(
            id=customer.id,
            phone=customer.phone,
            name=customer.name,
            current_points=customer.current_points or 0,
            lifetime_points=customer.lifetime_points or 0,
            tier=customer.tier,
            streak=customer.streak or 0,
            last_visit_at=customer.last_visit_at,
        )


@dataclass(frozen=True)
class VisitContext:
    tenant_id: int
    tenant_slug: str
    tenant_name: str
    customer: CustomerSnapshot
    program_id: int
    program_type: ProgramType
    config: Any
    now: datetime
    purchase_amount: Optional[Decimal] = None
    gamification_settings: GamificationSettings = field(default_factory=GamificationSettings)

    def gamification(self, increment: bool = True) -> Dict[str, object]:
        """
        Tier/streak refresh for this visit. `increment` says whether the visit
        adds a lifetime point; the tier follows the post-visit total.
        """
        lifetime_points = self.customer.lifetime_points + (1 if increment else 0)
        return refresh_with_settings(
            self.gamification_settings,
            lifetime_points,
            self.customer.last_visit_at,
            self.customer.streak,
            now=self.now,
        )


@dataclass
class VisitOutcome:
    program_type: ProgramType
    message: str
    status_code: int = 200
    payload: Dict[str, Any] = field(default_factory=dict)
    duplicate: bool = False
    new_visit: bool = False
    push_body: Optional[str] = None

    def to_response(self):
        body = {
            'message': self.message,
            'tipo_programa': self.program_type.value,
        }
        body.update(self.payload)
        if self.duplicate:
            body['code'] = ErrorCode.ALREADY_VISITED_TODAY.value
        return body, self.status_code


# ==================== Base handler ====================

class ProgramHandler:
    """Common plumbing for all program types."""

    program_type: ProgramType = None
    duplicate_message = '¡Ya registraste tu visita hoy! Vuelve mañana 😊'

    def __init__(self, ledger: LedgerStore = None):
        self.ledger = ledger or LedgerStore()

    @property
    def single_visit_per_day(self) -> bool:
        return self.program_type in SINGLE_VISIT_PER_DAY_TYPES

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        raise NotImplementedError

    # -------------------- helpers --------------------

    def success(self, ctx: VisitContext, message: str, gamification: Dict[str, object] = None,
                status_code: int = 200, push_body: str = None, **payload) -> VisitOutcome:
        rank = gamification or {}
        payload.setdefault('rango', rank.get('tier', ctx.customer.tier))
        payload.setdefault('racha', rank.get('streak', ctx.customer.streak))
        return VisitOutcome(
            program_type=self.program_type,
            message=message,
            status_code=status_code,
            payload=payload,
            new_visit=gamification is not None,
            push_body=push_body,
        )

    def duplicate(self, ctx: VisitContext, message: str = None, **payload) -> VisitOutcome:
        payload.setdefault('rango', ctx.customer.tier)
        payload.setdefault('racha', ctx.customer.streak)
        return VisitOutcome(
            program_type=self.program_type,
            message=message or self.duplicate_message,
            status_code=409,
            payload=payload,
            duplicate=True,
        )

    def discard(self, stamp: Optional[Stamp]) -> None:
        """Close a visit row whose value transfer was rejected."""
        if stamp is None:
            return
        with self.ledger.unit_of_work('visit discard'):
            self.ledger.mark_stamp_applied(stamp.id, StampStatus.DISCARDED)
            self.ledger.commit()

    def require_amount(self, ctx: VisitContext) -> Decimal:
        if ctx.purchase_amount is None or ctx.purchase_amount <= 0:
            raise ValidationError('Ingresa el monto de la compra', ErrorCode.AMOUNT_REQUIRED)
        return ctx.purchase_amount

    # -------------------- reconciliation --------------------

    def reconcile_orphan(self, stamp: Stamp, customer: Customer,
                         settings: GamificationSettings) -> StampStatus:
        """
        Re-apply the customer-side effects of a visit row left pending.
        Does not commit.

        Multi-visit types never re-apply: a caller retry already performed the
        value transfer.
        """
        if not self.single_visit_per_day:
            return StampStatus.DISCARDED

        self.ledger.increment_visit_counters(customer.id)
        self._reconcile_gamification(stamp, customer, settings, lifetime_points=customer.lifetime_points + 1)
        return StampStatus.RECONCILED

    def _reconcile_gamification(self, stamp: Stamp, customer: Customer,
                                settings: GamificationSettings, lifetime_points: int) -> None:
        # A later visit already refreshed the row
        if customer.last_visit_at is not None and customer.last_visit_at >= stamp.created_at:
            return
        self.ledger.apply_gamification(
            customer.id,
            refresh_with_settings(
                settings,
                lifetime_points,
                customer.last_visit_at,
                customer.streak,
                now=stamp.created_at,
            )
        )


# ==================== Handlers ====================

class StampCardHandler(ProgramHandler):
    """Punch card: one stamp per day, reward every `goal` stamps."""

    program_type = ProgramType.STAMP_CARD
    duplicate_message = '¡Ya sumaste tu punto hoy! Vuelve mañana 😊'

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        cfg = ctx.config
        gamification = ctx.gamification()

        transition = self.ledger.stamp_and_maybe_reward(
            tenant_id=ctx.tenant_id,
            phone=ctx.customer.phone,
            program_id=ctx.program_id,
            goal=cfg.goal,
            reward_description=cfg.reward_description,
            gamification=gamification,
            now=ctx.now,
        )

        if transition.duplicate:
            return self.duplicate(
                ctx,
                puntos_actuales=transition.current_points,
                puntos_meta=cfg.goal,
                alreadyStamped=True,
            )

        if transition.goal_reached:
            message = f'🎉 ¡Felicidades! Llegaste a {cfg.goal} puntos. {cfg.reward_description}'
        else:
            message = f'✅ ¡Punto sumado! Llevas {transition.current_points}/{cfg.goal}'

        return self.success(
            ctx,
            message,
            gamification=gamification,
            status_code=201 if transition.reward else 200,
            puntos_actuales=transition.current_points,
            puntos_meta=cfg.goal,
            llegoAMeta=transition.goal_reached,
            reward=transition.reward,
        )

    def reconcile_orphan(self, stamp, customer, settings):
        # Stamp-card rows are written by the atomic transaction, never left pending
        return StampStatus.DISCARDED


class CashbackHandler(ProgramHandler):
    """Percentage of each purchase credited to the customer's wallet."""

    program_type = ProgramType.CASHBACK

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        amount = self.require_amount(ctx)
        cfg = ctx.config
        customer = ctx.customer

        earned = round_half_up(amount * cfg.percentage / Decimal(100))

        membership = self.ledger.find_membership(
            customer.id, ctx.tenant_id, ctx.program_id, MembershipState.ACTIVE
        )
        balance = membership.balance if membership else 0
        if cfg.monthly_cap is not None and balance + earned > cfg.monthly_cap:
            earned = max(0, cfg.monthly_cap - balance)

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            logger.info(f'Repeat cashback purchase today for customer {customer.id}, crediting anyway')

        with self.ledger.unit_of_work('cashback credit'):
            if membership:
                membership.balance = balance + earned
            else:
                self.ledger.session.add(Membership(
                    customer_id=customer.id,
                    tenant_id=ctx.tenant_id,
                    program_id=ctx.program_id,
                    state=MembershipState.ACTIVE.value,
                    balance=earned,
                ))

        gamification = ctx.gamification() if stamp else None
        self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id if stamp else None,
            increment_points=True,
            gamification=gamification,
            now=ctx.now,
        )

        percentage = plain_number(cfg.percentage)
        purchase = plain_number(amount)
        return self.success(
            ctx,
            f'💰 ¡Ganaste ${earned} de cashback! ({percentage}% de ${purchase})',
            gamification=gamification,
            cashback_ganado=earned,
            saldo_total=balance + earned,
            porcentaje=percentage,
            monto_compra=purchase,
        )


class MultipassHandler(ProgramHandler):
    """Prepaid pack of N uses."""

    program_type = ProgramType.MULTIPASS

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        customer = ctx.customer

        membership = self.ledger.find_membership(
            customer.id, ctx.tenant_id, ctx.program_id, MembershipState.ACTIVE
        )
        if membership is None:
            latest = self.ledger.find_membership(customer.id, ctx.tenant_id, ctx.program_id)
            if latest is not None and latest.state == MembershipState.USED.value:
                raise PolicyError(
                    '❌ Ya usaste todos tus pases',
                    ErrorCode.PASS_EXHAUSTED,
                    extra={'usos_restantes': 0, 'necesita_compra': True},
                )
            raise NotFoundError(
                '❌ No tienes un multipase activo',
                ErrorCode.NO_ACTIVE_MEMBERSHIP,
                extra={'usos_restantes': 0, 'necesita_compra': True},
            )
        if not membership.remaining_uses or membership.remaining_uses <= 0:
            raise PolicyError(
                '❌ Ya usaste todos tus pases',
                ErrorCode.PASS_EXHAUSTED,
                extra={'usos_restantes': 0, 'necesita_compra': True},
            )
        membership_id = membership.id

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            logger.info(f'Repeat pass use today for customer {customer.id}, consuming anyway')

        with self.ledger.unit_of_work('pass consumption'):
            remaining = self.ledger.consume_pass(membership_id)

        if remaining is None:
            # Lost the race against a concurrent consumption
            self.ledger.rollback()
            self.discard(stamp)
            raise PolicyError(
                '❌ Ya usaste todos tus pases',
                ErrorCode.PASS_EXHAUSTED,
                extra={'usos_restantes': 0, 'necesita_compra': True},
            )

        gamification = ctx.gamification() if stamp else None
        self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id if stamp else None,
            increment_points=True,
            gamification=gamification,
            now=ctx.now,
        )

        if remaining > 0:
            message = f'🎟️ ¡Pase usado! Te quedan {remaining} usos'
        else:
            message = '🎟️ ¡Último pase usado! Tu pack se ha completado'

        return self.success(
            ctx,
            message,
            gamification=gamification,
            usos_restantes=remaining,
            pack_completado=remaining <= 0,
        )


def discount_levels_for(levels, total_visits: int):
    """
    (current level, next level) for a lifetime visit total.
    `levels` must be sorted by visits ascending.
    """
    current = DiscountLevel(visits=0, discount=0)
    upcoming = None
    for index, level in enumerate(levels):
        if total_visits >= level.visits:
            current = level
            upcoming = levels[index + 1] if index + 1 < len(levels) else None
        else:
            upcoming = level
            break
    return current, upcoming


class TieredDiscountHandler(ProgramHandler):
    """Permanent discount that grows with lifetime visits."""

    program_type = ProgramType.TIERED_DISCOUNT

    def _level_payload(self, levels, total: int) -> Dict[str, Any]:
        current, upcoming = discount_levels_for(levels, total)
        return {
            'descuento_actual': current.discount,
            'visitas_totales': total,
            'siguiente_nivel': {
                'faltan': upcoming.visits - total,
                'descuento': upcoming.discount,
            } if upcoming else None,
        }

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        levels = ctx.config.levels
        customer = ctx.customer

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            return self.duplicate(
                ctx,
                subio_de_nivel=False,
                **self._level_payload(levels, customer.lifetime_points)
            )

        gamification = ctx.gamification()
        counters = self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id,
            increment_points=True,
            gamification=gamification,
            now=ctx.now,
        )

        total = counters.lifetime_points
        current, _ = discount_levels_for(levels, total)
        leveled_up = total == current.visits and current.discount > 0

        if leveled_up:
            message = f'🎉 ¡Subiste de nivel! Ahora tienes {current.discount}% de descuento permanente'
        else:
            message = f'✅ ¡Visita registrada! Tu descuento actual: {current.discount}%'

        return self.success(
            ctx,
            message,
            gamification=gamification,
            subio_de_nivel=leveled_up,
            **self._level_payload(levels, total)
        )


class MembershipHandler(ProgramHandler):
    """VIP membership with an expiry date."""

    program_type = ProgramType.MEMBERSHIP

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        customer = ctx.customer

        membership = self.ledger.find_membership(
            customer.id, ctx.tenant_id, ctx.program_id, MembershipState.ACTIVE
        )
        if membership is None:
            raise NotFoundError(
                '❌ No tienes una membresía VIP activa',
                ErrorCode.NO_ACTIVE_MEMBERSHIP,
                extra={'tiene_membresia': False},
            )

        if membership.expires_at is not None and membership.expires_at < ctx.now:
            self.ledger.expire_membership(membership.id)
            logger.info(f'Membership {membership.id} expired lazily for customer {customer.id}')
            raise PolicyError(
                '⏰ Tu membresía VIP ha expirado. Renuévala para seguir disfrutando los beneficios',
                ErrorCode.MEMBERSHIP_EXPIRED,
                extra={'tiene_membresia': False, 'expirada': True},
            )
        expires_at = membership.expires_at

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            return self.duplicate(
                ctx,
                tiene_membresia=True,
                visitas_totales=customer.lifetime_points,
            )

        gamification = ctx.gamification()
        counters = self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id,
            increment_points=True,
            gamification=gamification,
            now=ctx.now,
        )

        return self.success(
            ctx,
            '👑 ¡Bienvenido VIP! Visita registrada. Disfruta tus beneficios exclusivos',
            gamification=gamification,
            tiene_membresia=True,
            beneficios=list(ctx.config.benefits),
            visitas_totales=counters.lifetime_points,
            fecha_fin=expires_at.isoformat() if expires_at else None,
        )


class AffiliationHandler(ProgramHandler):
    """Visit log only; the customer opted in to promos."""

    program_type = ProgramType.AFFILIATION

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        customer = ctx.customer

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            return self.duplicate(ctx, visitas_totales=customer.lifetime_points)

        gamification = ctx.gamification()
        counters = self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id,
            increment_points=True,
            gamification=gamification,
            now=ctx.now,
        )

        return self.success(
            ctx,
            '✅ ¡Visita registrada! Te avisaremos de promos y novedades',
            gamification=gamification,
            visitas_totales=counters.lifetime_points,
        )


class CouponHandler(ProgramHandler):
    """One-time discount coupon per customer."""

    program_type = ProgramType.COUPON

    def _issue(self, customer_id: int, tenant_id: int, program_id: int,
               membership: Optional[Membership], discount: int):
        reward = RewardIssuer(self.ledger.session).issue(
            customer_id=customer_id,
            tenant_id=tenant_id,
            program_id=program_id,
            description=f'{discount}% de descuento',
            prefix=COUPON_CODE_PREFIX,
        )
        if membership is not None:
            membership.state = MembershipState.USED.value
        else:
            self.ledger.session.add(Membership(
                customer_id=customer_id,
                tenant_id=tenant_id,
                program_id=program_id,
                state=MembershipState.USED.value,
            ))
        return reward.to_dict()

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        cfg = ctx.config
        customer = ctx.customer

        if cfg.valid_until is not None and cfg.valid_until < ctx.now:
            raise PolicyError(
                '⏰ Este cupón ha expirado',
                ErrorCode.COUPON_EXPIRED,
                extra={'expirado': True},
            )

        membership = self.ledger.find_membership(customer.id, ctx.tenant_id, ctx.program_id)
        if membership is not None and membership.state == MembershipState.USED.value:
            raise ConflictError(
                '❌ Ya usaste este cupón',
                ErrorCode.COUPON_ALREADY_USED,
                extra={'ya_usado': True},
            )

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            return self.duplicate(ctx)

        with self.ledger.unit_of_work('coupon issuance'):
            coupon = self._issue(
                customer.id, ctx.tenant_id, ctx.program_id, membership, cfg.discount_percentage
            )

        gamification = ctx.gamification(increment=False)
        self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id,
            increment_points=False,
            gamification=gamification,
            now=ctx.now,
        )

        return self.success(
            ctx,
            f'🎫 ¡Cupón de {cfg.discount_percentage}% generado! Muestra el QR en caja',
            gamification=gamification,
            status_code=201,
            descuento=cfg.discount_percentage,
            cupon=coupon,
        )

    def reconcile_orphan(self, stamp, customer, settings):
        membership = (
            Membership.query
            .filter_by(customer_id=customer.id, tenant_id=stamp.tenant_id)
            .join(Membership.program)
            .filter_by(program_type=self.program_type.value)
            .order_by(Membership.id.desc())
            .first()
        )
        if membership is not None and membership.state == MembershipState.USED.value:
            # Coupon made it out before the failure
            self._reconcile_gamification(stamp, customer, settings, customer.lifetime_points)
            return StampStatus.RECONCILED

        program = self.ledger.find_active_program(stamp.tenant_id)
        if program is None or program.program_type != self.program_type.value:
            return StampStatus.DISCARDED

        cfg = resolve_program_config(program)
        self._issue(customer.id, stamp.tenant_id, program.id, membership, cfg.discount_percentage)
        self._reconcile_gamification(stamp, customer, settings, customer.lifetime_points)
        return StampStatus.RECONCILED


class GiftCardHandler(ProgramHandler):
    """Prepaid balance debited by purchase amount."""

    program_type = ProgramType.GIFT_CARD

    def apply(self, ctx: VisitContext) -> VisitOutcome:
        amount = round_half_up(self.require_amount(ctx))
        if amount <= 0:
            # Sub-peso amounts round to nothing to debit
            raise ValidationError('Ingresa el monto de la compra', ErrorCode.AMOUNT_REQUIRED)
        customer = ctx.customer

        membership = self.ledger.find_membership(
            customer.id, ctx.tenant_id, ctx.program_id, MembershipState.ACTIVE
        )
        if membership is None or membership.balance <= 0:
            raise NotFoundError(
                '❌ No tienes una gift card activa o tu saldo es $0',
                ErrorCode.NO_ACTIVE_MEMBERSHIP,
                extra={'tiene_giftcard': False, 'saldo': 0},
            )
        if amount > membership.balance:
            raise InsufficientBalanceError(membership.balance, amount)
        membership_id = membership.id

        stamp = self.ledger.record_visit(customer.id, ctx.tenant_id, self.program_type, ctx.now)
        if stamp is None:
            logger.info(f'Repeat gift card purchase today for customer {customer.id}, debiting anyway')

        with self.ledger.unit_of_work('gift card debit'):
            remaining = self.ledger.debit_balance(membership_id, amount)

        if remaining is None:
            # A concurrent debit drained the card first
            self.ledger.rollback()
            self.discard(stamp)
            current = self.ledger.session.get(Membership, membership_id)
            raise InsufficientBalanceError(current.balance if current else 0, amount)

        gamification = ctx.gamification(increment=False) if stamp else None
        self.ledger.finalize_visit(
            customer.id,
            stamp_id=stamp.id if stamp else None,
            increment_points=False,
            gamification=gamification,
            now=ctx.now,
        )

        return self.success(
            ctx,
            f'🎁 Compra de ${amount} descontada. Te quedan ${remaining} en tu Gift Card',
            gamification=gamification,
            tiene_giftcard=True,
            saldo=remaining,
            consumido=amount,
            valor_maximo=ctx.config.max_value,
        )


HANDLERS: Dict[ProgramType, Type[ProgramHandler]] = {
    ProgramType.STAMP_CARD: StampCardHandler,
    ProgramType.CASHBACK: CashbackHandler,
    ProgramType.MULTIPASS: MultipassHandler,
    ProgramType.TIERED_DISCOUNT: TieredDiscountHandler,
    ProgramType.MEMBERSHIP: MembershipHandler,
    ProgramType.AFFILIATION: AffiliationHandler,
    ProgramType.COUPON: CouponHandler,
    ProgramType.GIFT_CARD: GiftCardHandler,
}


def get_handler(program_type: ProgramType, ledger: LedgerStore = None) -> Optional[ProgramHandler]:
    handler_class = HANDLERS.get(program_type)
    if handler_class is None:
        return None
    return handler_class(ledger)
