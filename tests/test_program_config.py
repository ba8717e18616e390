"""
Tests for the program config resolver.
"""
from datetime import datetime
from decimal import Decimal

from app.models.program import Program, ProgramType
from app.services.program_config import (
    AffiliationConfig,
    CashbackConfig,
    DEFAULT_DISCOUNT_LEVELS,
    DiscountLevel,
    get_motor_config,
    resolve_config,
    resolve_program_config,
)


class TestDefaults:
    """Every field defaults when the config is missing."""

    def test_cashback_defaults(self):
        cfg = resolve_config(None, ProgramType.CASHBACK)
        assert cfg == CashbackConfig(percentage=Decimal('5'), monthly_cap=None)

    def test_discount_default_table(self):
        cfg = resolve_config({}, ProgramType.TIERED_DISCOUNT)
        assert cfg.levels == DEFAULT_DISCOUNT_LEVELS
        assert [(lvl.visits, lvl.discount) for lvl in cfg.levels] == [(5, 5), (15, 10), (30, 15)]

    def test_multipass_membership_coupon_gift_defaults(self):
        assert resolve_config({}, ProgramType.MULTIPASS).uses == 10
        assert resolve_config({}, ProgramType.MEMBERSHIP).duration_days == 30
        assert resolve_config({}, ProgramType.MEMBERSHIP).benefits == ()
        assert resolve_config({}, ProgramType.COUPON).discount_percentage == 15
        assert resolve_config({}, ProgramType.COUPON).valid_until is None
        assert resolve_config({}, ProgramType.GIFT_CARD).max_value == 25000

    def test_stamp_card_uses_program_columns(self):
        cfg = resolve_config({}, ProgramType.STAMP_CARD, goal=8, reward_description='Pan gratis')
        assert cfg.goal == 8
        assert cfg.reward_description == 'Pan gratis'

    def test_stamp_card_invalid_goal(self):
        assert resolve_config({}, ProgramType.STAMP_CARD, goal=0).goal == 10
        assert resolve_config({}, ProgramType.STAMP_CARD, goal='x').goal == 10

    def test_affiliation_has_no_settings(self):
        assert resolve_config({'porcentaje': 9}, ProgramType.AFFILIATION) == AffiliationConfig()


class TestMalformedInput:
    """Malformed values fall back to defaults instead of failing."""

    def test_non_dict_config(self):
        assert resolve_config('garbage', ProgramType.CASHBACK).percentage == Decimal('5')
        assert resolve_config([1, 2], ProgramType.MULTIPASS).uses == 10

    def test_bad_numbers(self):
        cfg = resolve_config({'porcentaje': 'mucho', 'tope_mensual': -3}, ProgramType.CASHBACK)
        assert cfg.percentage == Decimal('5')
        assert cfg.monthly_cap is None

    def test_infinite_percentage(self):
        assert resolve_config({'porcentaje': 'Infinity'}, ProgramType.CASHBACK).percentage == Decimal('5')

    def test_bad_levels_dropped(self):
        cfg = resolve_config(
            {'niveles': [{'visitas': 'x', 'descuento': 5}, {'visitas': 10, 'descuento': 20}]},
            ProgramType.TIERED_DISCOUNT,
        )
        assert cfg.levels == (DiscountLevel(visits=10, discount=20),)

    def test_levels_sorted(self):
        cfg = resolve_config(
            {'niveles': [{'visitas': 20, 'descuento': 15}, {'visitas': 3, 'descuento': 5}]},
            ProgramType.TIERED_DISCOUNT,
        )
        assert [lvl.visits for lvl in cfg.levels] == [3, 20]

    def test_unparseable_expiry(self):
        assert resolve_config({'valido_hasta': 'pronto'}, ProgramType.COUPON).valid_until is None


class TestConfigShapes:
    """Legacy flat keys and per-motor nesting."""

    def test_legacy_flat_keys(self):
        cfg = resolve_config({'porcentaje': 10, 'tope_mensual': 5000}, ProgramType.CASHBACK)
        assert cfg.percentage == Decimal('10')
        assert cfg.monthly_cap == 5000

    def test_nested_motor_wins(self):
        raw = {'porcentaje': 10, 'motors': {'cashback': {'porcentaje': 3}}}
        assert resolve_config(raw, ProgramType.CASHBACK).percentage == Decimal('3')

    def test_empty_motor_falls_back_to_flat(self):
        raw = {'porcentaje': 10, 'motors': {'cashback': {}}}
        assert get_motor_config(raw, ProgramType.CASHBACK) == {'porcentaje': 10}

    def test_timezone_expiry_normalized_to_utc(self):
        cfg = resolve_config({'valido_hasta': '2026-05-01T12:00:00-04:00'}, ProgramType.COUPON)
        assert cfg.valid_until == datetime(2026, 5, 1, 16, 0, 0)

    def test_benefits_list(self):
        cfg = resolve_config({'beneficios': ['Café gratis', 'Wifi']}, ProgramType.MEMBERSHIP)
        assert cfg.benefits == ('Café gratis', 'Wifi')


class TestResolveProgramConfig:

    def test_unknown_type(self):
        program = Program(program_type='trueque', goal=10, config={})
        assert resolve_program_config(program) is None

    def test_known_type(self):
        program = Program(program_type='regalo', goal=10, config={'valor_maximo': 10000})
        assert resolve_program_config(program).max_value == 10000
