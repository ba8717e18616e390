"""
Program config resolver.

Normalizes a program's free-form JSON config into a typed, fully-defaulted
structure per program type. Never fails: unknown, missing or malformed fields
fall back to defaults.

Two config shapes exist in stored programs:
- legacy flat keys:   {"porcentaje": 10, "tope_mensual": 5000}
- per-motor nesting:  {"motors": {"cashback": {"porcentaje": 10}}}
The nested form wins when it is non-empty.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from ..models.program import ProgramType

DEFAULT_STAMP_GOAL = 10
DEFAULT_CASHBACK_PERCENTAGE = Decimal('5')
DEFAULT_PASS_USES = 10
DEFAULT_MEMBERSHIP_DAYS = 30
DEFAULT_COUPON_DISCOUNT = 15
DEFAULT_GIFT_CARD_MAX = 25000

LEGACY_TYPED_KEYS: Dict[ProgramType, List[str]] = {
    ProgramType.STAMP_CARD: [],
    ProgramType.CASHBACK: ['porcentaje', 'tope_mensual'],
    ProgramType.MULTIPASS: ['cantidad_usos', 'precio_pack'],
    ProgramType.MEMBERSHIP: ['duracion_dias', 'beneficios', 'precio_mensual'],
    ProgramType.TIERED_DISCOUNT: ['niveles'],
    ProgramType.COUPON: ['descuento_porcentaje', 'valido_hasta'],
    ProgramType.GIFT_CARD: ['valor_maximo'],
    ProgramType.AFFILIATION: [],
}


@dataclass(frozen=True)
class DiscountLevel:
    visits: int
    discount: int


DEFAULT_DISCOUNT_LEVELS: Tuple[DiscountLevel, ...] = (
    DiscountLevel(visits=5, discount=5),
    DiscountLevel(visits=15, discount=10),
    DiscountLevel(visits=30, discount=15),
)


@dataclass(frozen=True)
class StampCardConfig:
    goal: int = DEFAULT_STAMP_GOAL
    reward_description: str = 'Premio'


@dataclass(frozen=True)
class CashbackConfig:
    percentage: Decimal = DEFAULT_CASHBACK_PERCENTAGE
    monthly_cap: Optional[int] = None  # None = unbounded


@dataclass(frozen=True)
class MultipassConfig:
    uses: int = DEFAULT_PASS_USES
    pack_price: Optional[int] = None


@dataclass(frozen=True)
class MembershipConfig:
    duration_days: int = DEFAULT_MEMBERSHIP_DAYS
    benefits: Tuple[str, ...] = ()
    monthly_price: Optional[int] = None


@dataclass(frozen=True)
class TieredDiscountConfig:
    levels: Tuple[DiscountLevel, ...] = DEFAULT_DISCOUNT_LEVELS


@dataclass(frozen=True)
class AffiliationConfig:
    pass


@dataclass(frozen=True)
class CouponConfig:
    discount_percentage: int = DEFAULT_COUPON_DISCOUNT
    valid_until: Optional[datetime] = None


@dataclass(frozen=True)
class GiftCardConfig:
    max_value: int = DEFAULT_GIFT_CARD_MAX


# ==================== Coercion helpers ====================

def _as_record(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: Optional[int], minimum: int = None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError, OverflowError):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _as_decimal(value: Any, default: Decimal, minimum: Decimal = None) -> Decimal:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not number.is_finite() or (minimum is not None and number < minimum):
        return default
    return number


def _as_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp into a naive UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


def _as_levels(value: Any) -> Tuple[DiscountLevel, ...]:
    if not isinstance(value, list):
        return DEFAULT_DISCOUNT_LEVELS

    levels = []
    for item in value:
        item = _as_record(item)
        visits = _as_int(item.get('visitas'), None, minimum=1)
        discount = _as_int(item.get('descuento'), None, minimum=0)
        if visits is None or discount is None:
            continue
        levels.append(DiscountLevel(visits=visits, discount=discount))

    if not levels:
        return DEFAULT_DISCOUNT_LEVELS
    return tuple(sorted(levels, key=lambda level: level.visits))


# ==================== Resolution ====================

def get_motor_config(raw_config: Any, program_type: ProgramType) -> Dict[str, Any]:
    """Extract the raw settings for one motor from either config shape."""
    cfg = _as_record(raw_config)
    motors = _as_record(cfg.get('motors'))
    from_motors = _as_record(motors.get(program_type.value))
    if from_motors:
        return from_motors

    keys = LEGACY_TYPED_KEYS.get(program_type, [])
    return {key: cfg[key] for key in keys if cfg.get(key) is not None}


def resolve_config(
    raw_config: Any,
    program_type: ProgramType,
    goal: Any = None,
    reward_description: Optional[str] = None
):
    """
    Build the typed config for a program type.

    Args:
        raw_config: The stored JSON config (any shape, may be None)
        program_type: Program type the config belongs to
        goal: Program goal column (stamp-card only)
        reward_description: Program reward text (stamp-card only)

    Returns:
        One of the *Config dataclasses, every field populated
    """
    raw = get_motor_config(raw_config, program_type)

    if program_type == ProgramType.STAMP_CARD:
        return StampCardConfig(
            goal=_as_int(goal, DEFAULT_STAMP_GOAL, minimum=1),
            reward_description=reward_description or StampCardConfig.reward_description,
        )

    if program_type == ProgramType.CASHBACK:
        return CashbackConfig(
            percentage=_as_decimal(raw.get('porcentaje'), DEFAULT_CASHBACK_PERCENTAGE, minimum=Decimal('0')),
            monthly_cap=_as_int(raw.get('tope_mensual'), None, minimum=0),
        )

    if program_type == ProgramType.MULTIPASS:
        return MultipassConfig(
            uses=_as_int(raw.get('cantidad_usos'), DEFAULT_PASS_USES, minimum=1),
            pack_price=_as_int(raw.get('precio_pack'), None, minimum=0),
        )

    if program_type == ProgramType.MEMBERSHIP:
        benefits = raw.get('beneficios')
        return MembershipConfig(
            duration_days=_as_int(raw.get('duracion_dias'), DEFAULT_MEMBERSHIP_DAYS, minimum=1),
            benefits=tuple(str(b) for b in benefits) if isinstance(benefits, list) else (),
            monthly_price=_as_int(raw.get('precio_mensual'), None, minimum=0),
        )

    if program_type == ProgramType.TIERED_DISCOUNT:
        return TieredDiscountConfig(levels=_as_levels(raw.get('niveles')))

    if program_type == ProgramType.COUPON:
        return CouponConfig(
            discount_percentage=_as_int(raw.get('descuento_porcentaje'), DEFAULT_COUPON_DISCOUNT, minimum=1),
            valid_until=_as_datetime(raw.get('valido_hasta')),
        )

    if program_type == ProgramType.GIFT_CARD:
        return GiftCardConfig(
            max_value=_as_int(raw.get('valor_maximo'), DEFAULT_GIFT_CARD_MAX, minimum=1),
        )

    return AffiliationConfig()


def resolve_program_config(program):
    """Typed config for a Program row. Returns None for an unknown type."""
    program_type = ProgramType.parse(program.program_type or ProgramType.STAMP_CARD.value)
    if program_type is None:
        return None
    return resolve_config(
        program.config,
        program_type,
        goal=program.goal,
        reward_description=program.reward_description,
    )
