"""
Tests for the program-type handlers, driven through the visit dispatcher.
"""
from datetime import timedelta

import pytest

from app.extensions import db
from app.models import Customer, Membership, MembershipState, Reward, Stamp
from app.services.ledger import LedgerStore
from app.services.visit_service import VisitService
from app.utils.errors import ErrorCode
from app.utils.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    PolicyError,
    ValidationError,
)

CUSTOMER_PHONE = '+56911112222'


def fresh(model, pk):
    instance = db.session.get(model, pk)
    db.session.refresh(instance)
    return instance


@pytest.fixture
def visit(app, sample_tenant, sample_customer):
    """Submit a visit for the sample customer."""
    service = VisitService()

    def _visit(now, amount=None):
        return service.process_visit(sample_tenant.id, CUSTOMER_PHONE, purchase_amount=amount, now=now)

    return _visit


class TestCashback:

    def test_credit_creates_wallet(self, visit, make_program, sample_customer, visit_day):
        make_program('cashback', config={'porcentaje': 10})

        body, status = visit(visit_day, amount=5000).to_response()

        assert status == 200
        assert body['cashback_ganado'] == 500
        assert body['saldo_total'] == 500
        assert body['porcentaje'] == 10
        assert body['monto_compra'] == 5000

        membership = Membership.query.filter_by(customer_id=sample_customer.id).one()
        assert membership.balance == 500
        assert membership.state == MembershipState.ACTIVE.value

    def test_rounds_half_up(self, visit, make_program, visit_day):
        make_program('cashback', config={'porcentaje': 5})
        body, _ = visit(visit_day, amount=1010).to_response()
        assert body['cashback_ganado'] == 51

    def test_capped_at_monthly_cap(self, visit, make_program, make_membership, visit_day):
        program = make_program('cashback', config={'porcentaje': 10, 'tope_mensual': 1000})
        membership = make_membership(program, balance=950)

        body, _ = visit(visit_day, amount=5000).to_response()

        assert body['cashback_ganado'] == 50
        assert body['saldo_total'] == 1000
        assert fresh(Membership, membership.id).balance == 1000

    def test_at_cap_earns_nothing(self, visit, make_program, make_membership, visit_day):
        program = make_program('cashback', config={'porcentaje': 10, 'tope_mensual': 1000})
        make_membership(program, balance=1000)

        body, _ = visit(visit_day, amount=5000).to_response()
        assert body['cashback_ganado'] == 0
        assert body['saldo_total'] == 1000

    def test_repeat_purchase_same_day_credits_again(self, visit, make_program, sample_customer, visit_day):
        make_program('cashback', config={'porcentaje': 10})

        first = visit(visit_day, amount=1000)
        second = visit(visit_day + timedelta(hours=3), amount=2000)

        assert first.duplicate is False
        assert second.duplicate is False
        assert second.to_response()[1] == 200
        assert second.payload['saldo_total'] == 300
        assert Stamp.query.filter_by(customer_id=sample_customer.id).count() == 1
        assert fresh(Customer, sample_customer.id).lifetime_points == 2

    @pytest.mark.parametrize('amount', [None, 0, -100])
    def test_amount_required(self, visit, make_program, visit_day, amount):
        make_program('cashback')
        with pytest.raises(ValidationError) as exc_info:
            visit(visit_day, amount=amount)
        assert exc_info.value.code == ErrorCode.AMOUNT_REQUIRED

    def test_invalid_amount(self, visit, make_program, visit_day):
        make_program('cashback')
        with pytest.raises(ValidationError) as exc_info:
            visit(visit_day, amount='muchos')
        assert exc_info.value.code == ErrorCode.INVALID_FIELD


class TestMultipass:

    def test_uses_decrease_to_used(self, visit, make_program, make_membership, visit_day):
        program = make_program('multipase')
        membership = make_membership(program, remaining_uses=2)

        first = visit(visit_day)
        assert first.payload['usos_restantes'] == 1
        assert first.payload['pack_completado'] is False
        assert fresh(Membership, membership.id).state == MembershipState.ACTIVE.value

        second = visit(visit_day + timedelta(days=1))
        assert second.payload['usos_restantes'] == 0
        assert second.payload['pack_completado'] is True

        membership = fresh(Membership, membership.id)
        assert membership.remaining_uses == 0
        assert membership.state == MembershipState.USED.value

    def test_exhausted_pack_rejected(self, visit, make_program, make_membership, visit_day):
        program = make_program('multipase')
        membership = make_membership(program, remaining_uses=1)
        visit(visit_day)

        with pytest.raises(PolicyError) as exc_info:
            visit(visit_day + timedelta(days=1))
        assert exc_info.value.code == ErrorCode.PASS_EXHAUSTED
        assert fresh(Membership, membership.id).remaining_uses == 0

    def test_same_day_uses_both_consume(self, visit, make_program, make_membership, visit_day):
        program = make_program('multipase')
        membership = make_membership(program, remaining_uses=3)

        visit(visit_day)
        outcome = visit(visit_day + timedelta(hours=1))

        assert outcome.duplicate is False
        assert outcome.payload['usos_restantes'] == 1
        assert fresh(Membership, membership.id).remaining_uses == 1

    def test_no_membership(self, visit, make_program, visit_day):
        make_program('multipase')
        with pytest.raises(NotFoundError) as exc_info:
            visit(visit_day)
        assert exc_info.value.code == ErrorCode.NO_ACTIVE_MEMBERSHIP
        assert exc_info.value.status_code == 404

    def test_guarded_consumption(self, app, make_program, make_membership):
        program = make_program('multipase')
        membership = make_membership(program, remaining_uses=1)
        ledger = LedgerStore()

        assert ledger.consume_pass(membership.id) == 0
        assert ledger.consume_pass(membership.id) is None
        ledger.commit()

        membership = fresh(Membership, membership.id)
        assert membership.remaining_uses == 0
        assert membership.state == MembershipState.USED.value


class TestTieredDiscount:

    def test_level_up_exactly_at_threshold(self, visit, make_program, sample_customer, visit_day):
        make_program('descuento')
        sample_customer.current_points = 4
        sample_customer.lifetime_points = 4
        db.session.commit()

        body, status = visit(visit_day).to_response()

        assert status == 200
        assert body['subio_de_nivel'] is True
        assert body['descuento_actual'] == 5
        assert body['visitas_totales'] == 5
        assert body['siguiente_nivel'] == {'faltan': 10, 'descuento': 10}

        body, _ = visit(visit_day + timedelta(days=1)).to_response()
        assert body['subio_de_nivel'] is False
        assert body['descuento_actual'] == 5
        assert body['visitas_totales'] == 6

    def test_below_first_level(self, visit, make_program, visit_day):
        make_program('descuento')
        body, _ = visit(visit_day).to_response()

        assert body['subio_de_nivel'] is False
        assert body['descuento_actual'] == 0
        assert body['siguiente_nivel'] == {'faltan': 4, 'descuento': 5}

    def test_top_level_has_no_next(self, visit, make_program, sample_customer, visit_day):
        make_program('descuento', config={'niveles': [{'visitas': 2, 'descuento': 10}]})
        sample_customer.current_points = 5
        sample_customer.lifetime_points = 5
        db.session.commit()

        body, _ = visit(visit_day).to_response()
        assert body['descuento_actual'] == 10
        assert body['siguiente_nivel'] is None

    def test_duplicate(self, visit, make_program, sample_customer, visit_day):
        make_program('descuento')
        visit(visit_day)

        body, status = visit(visit_day + timedelta(hours=2)).to_response()

        assert status == 409
        assert body['code'] == ErrorCode.ALREADY_VISITED_TODAY.value
        assert body['visitas_totales'] == 1
        assert fresh(Customer, sample_customer.id).lifetime_points == 1


class TestMembership:

    def test_active_member_visit(self, visit, make_program, make_membership, sample_customer, visit_day):
        program = make_program('membresia', config={'beneficios': ['Café gratis']})
        make_membership(program, expires_at=visit_day + timedelta(days=10))

        body, status = visit(visit_day).to_response()

        assert status == 200
        assert body['tiene_membresia'] is True
        assert body['beneficios'] == ['Café gratis']
        assert body['visitas_totales'] == 1
        assert fresh(Customer, sample_customer.id).current_points == 1

    def test_expired_membership_flips_state(self, visit, make_program, make_membership, visit_day):
        program = make_program('membresia')
        membership = make_membership(program, expires_at=visit_day - timedelta(days=1))

        with pytest.raises(PolicyError) as exc_info:
            visit(visit_day)

        assert exc_info.value.code == ErrorCode.MEMBERSHIP_EXPIRED
        assert exc_info.value.status_code == 403
        assert fresh(Membership, membership.id).state == MembershipState.EXPIRED.value
        assert Stamp.query.count() == 0

    def test_no_membership(self, visit, make_program, visit_day):
        make_program('membresia')
        with pytest.raises(NotFoundError) as exc_info:
            visit(visit_day)
        assert exc_info.value.code == ErrorCode.NO_ACTIVE_MEMBERSHIP


class TestAffiliation:

    def test_visit_counted(self, visit, make_program, sample_customer, visit_day):
        make_program('afiliacion')

        body, status = visit(visit_day).to_response()

        assert status == 200
        assert body['visitas_totales'] == 1
        customer = fresh(Customer, sample_customer.id)
        assert customer.current_points == 1
        assert customer.lifetime_points == 1
        assert customer.streak == 1
        assert customer.last_visit_at == visit_day

    def test_tier_follows_post_visit_total(self, visit, make_program, sample_customer, visit_day):
        make_program('afiliacion')
        sample_customer.current_points = 29
        sample_customer.lifetime_points = 29
        db.session.commit()

        body, _ = visit(visit_day).to_response()

        assert body['rango'] == 'plata'
        customer = fresh(Customer, sample_customer.id)
        assert customer.lifetime_points == 30
        assert customer.tier == 'plata'

    def test_duplicate(self, visit, make_program, visit_day):
        make_program('afiliacion')
        visit(visit_day)
        outcome = visit(visit_day + timedelta(minutes=5))
        assert outcome.duplicate is True
        assert outcome.status_code == 409


class TestCoupon:

    def test_coupon_issued_once(self, visit, make_program, sample_customer, visit_day):
        make_program('cupon', config={'descuento_porcentaje': 20})

        body, status = visit(visit_day).to_response()

        assert status == 201
        assert body['descuento'] == 20
        assert body['cupon']['qr_code'].startswith('CUPON-')
        assert body['cupon']['descripcion'] == '20% de descuento'

        membership = Membership.query.filter_by(customer_id=sample_customer.id).one()
        assert membership.state == MembershipState.USED.value
        assert fresh(Customer, sample_customer.id).lifetime_points == 0

        with pytest.raises(ConflictError) as exc_info:
            visit(visit_day + timedelta(days=1))
        assert exc_info.value.code == ErrorCode.COUPON_ALREADY_USED
        assert Reward.query.count() == 1

    def test_tier_unchanged_below_threshold(self, visit, make_program, sample_customer, visit_day):
        make_program('cupon', config={'descuento_porcentaje': 20})
        sample_customer.current_points = 29
        sample_customer.lifetime_points = 29
        db.session.commit()

        body, _ = visit(visit_day).to_response()

        assert body['rango'] == 'bronce'
        customer = fresh(Customer, sample_customer.id)
        assert customer.lifetime_points == 29
        assert customer.tier == 'bronce'

    def test_expired_coupon(self, visit, make_program, visit_day):
        make_program('cupon', config={'valido_hasta': (visit_day - timedelta(days=1)).isoformat()})

        with pytest.raises(PolicyError) as exc_info:
            visit(visit_day)
        assert exc_info.value.code == ErrorCode.COUPON_EXPIRED
        assert Reward.query.count() == 0


class TestGiftCard:

    def test_debit(self, visit, make_program, make_membership, visit_day):
        program = make_program('regalo')
        membership = make_membership(program, balance=10000)

        body, status = visit(visit_day, amount=3000).to_response()

        assert status == 200
        assert body['saldo'] == 7000
        assert body['consumido'] == 3000
        assert fresh(Membership, membership.id).balance == 7000

    def test_exact_balance_marks_used(self, visit, make_program, make_membership, visit_day):
        program = make_program('regalo')
        membership = make_membership(program, balance=5000)

        body, _ = visit(visit_day, amount=5000).to_response()

        assert body['saldo'] == 0
        membership = fresh(Membership, membership.id)
        assert membership.balance == 0
        assert membership.state == MembershipState.USED.value

    def test_insufficient_balance_unchanged(self, visit, make_program, make_membership, sample_customer, visit_day):
        program = make_program('regalo')
        membership = make_membership(program, balance=10000)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            visit(visit_day, amount=12000)

        error = exc_info.value
        assert error.code == ErrorCode.INSUFFICIENT_BALANCE
        assert error.status_code == 400
        assert error.extra == {'saldo': 10000, 'requerido': 12000}
        assert fresh(Membership, membership.id).balance == 10000
        assert fresh(Customer, sample_customer.id).lifetime_points == 0

    def test_tier_unchanged_below_threshold(self, visit, make_program, make_membership, sample_customer, visit_day):
        program = make_program('regalo')
        make_membership(program, balance=10000)
        sample_customer.current_points = 29
        sample_customer.lifetime_points = 29
        db.session.commit()

        body, _ = visit(visit_day, amount=3000).to_response()

        assert body['rango'] == 'bronce'
        customer = fresh(Customer, sample_customer.id)
        assert customer.lifetime_points == 29
        assert customer.tier == 'bronce'

    def test_sub_peso_amount_rejected_without_visit(self, visit, make_program, make_membership, visit_day):
        program = make_program('regalo')
        membership = make_membership(program, balance=10000)

        with pytest.raises(ValidationError) as exc_info:
            visit(visit_day, amount='0.4')

        assert exc_info.value.code == ErrorCode.AMOUNT_REQUIRED
        assert fresh(Membership, membership.id).balance == 10000
        assert Stamp.query.count() == 0

    def test_no_card(self, visit, make_program, visit_day):
        make_program('regalo')
        with pytest.raises(NotFoundError) as exc_info:
            visit(visit_day, amount=1000)
        assert exc_info.value.code == ErrorCode.NO_ACTIVE_MEMBERSHIP

    def test_amount_required(self, visit, make_program, make_membership, visit_day):
        program = make_program('regalo')
        make_membership(program, balance=10000)
        with pytest.raises(ValidationError) as exc_info:
            visit(visit_day)
        assert exc_info.value.code == ErrorCode.AMOUNT_REQUIRED

    def test_guarded_debit(self, app, make_program, make_membership):
        program = make_program('regalo')
        membership = make_membership(program, balance=1000)
        ledger = LedgerStore()

        assert ledger.debit_balance(membership.id, 600) == 400
        assert ledger.debit_balance(membership.id, 600) is None
        ledger.commit()

        assert fresh(Membership, membership.id).balance == 400
