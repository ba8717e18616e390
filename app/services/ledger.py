"""
Ledger store.

Persistence operations the visit engine needs on Customer, Program, Stamp,
Membership and Reward rows:

- plain lookups keyed by tenant/phone/program
- `record_visit`: the daily-uniqueness idempotency primitive
- `stamp_and_maybe_reward`: the atomic increment-and-maybe-reward transaction
  used by the stamp-card path
- single-row conditional UPDATEs keyed by primary key for every counter and
  wallet mutation (never bulk or range updates)
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models.customer import Customer
from ..models.membership import Membership, MembershipState
from ..models.program import Program, ProgramType
from ..models.stamp import Stamp, StampStatus
from ..models.tenant import Tenant
from ..utils.errors import ErrorCode
from ..utils.exceptions import LoyaltyError, NotFoundError, StoreError
from .reward_service import RewardIssuer, REWARD_CODE_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitCounters:
    current_points: int
    lifetime_points: int


@dataclass(frozen=True)
class StampCardTransition:
    """Result of the atomic stamp-card primitive."""
    duplicate: bool
    current_points: int
    lifetime_points: int
    goal_reached: bool = False
    reward: Optional[Dict[str, str]] = None


class LedgerStore:
    """
    Usage:
        ledger = LedgerStore()
        customer = ledger.find_customer(tenant_id, '+56911112222')
        stamp = ledger.record_visit(customer.id, tenant_id, ProgramType.AFFILIATION)
        if stamp:
            with ledger.unit_of_work('affiliation visit'):
                ledger.increment_visit_counters(customer.id)
                ledger.mark_stamp_applied(stamp.id)
            ledger.commit()
    """

    def __init__(self, session=None):
        self.session = session or db.session

    # ==================== TRANSACTIONS ====================

    @contextmanager
    def unit_of_work(self, description: str):
        """
        Roll back and translate store failures into a retryable StoreError.
        Business errors raised inside the block also roll back.
        """
        try:
            yield
        except LoyaltyError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f'Ledger operation failed ({description}): {e}')
            raise StoreError(original_error=e)

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f'Ledger commit failed: {e}')
            raise StoreError(original_error=e)

    def rollback(self):
        self.session.rollback()

    # ==================== LOOKUPS ====================

    def find_customer(self, tenant_id: int, phone: str) -> Optional[Customer]:
        """Customer with its tenant projection loaded."""
        return (
            Customer.query
            .options(joinedload(Customer.tenant))
            .filter_by(tenant_id=tenant_id, phone=phone)
            .first()
        )

    def find_tenant(self, tenant_id: int) -> Optional[Tenant]:
        return self.session.get(Tenant, tenant_id)

    def find_active_program(self, tenant_id: int) -> Optional[Program]:
        return (
            Program.query
            .filter_by(tenant_id=tenant_id, is_active=True)
            .order_by(Program.id.desc())
            .first()
        )

    def find_membership(
        self,
        customer_id: int,
        tenant_id: int,
        program_id: int,
        state: Optional[MembershipState] = None
    ) -> Optional[Membership]:
        query = Membership.query.filter_by(
            customer_id=customer_id,
            tenant_id=tenant_id,
            program_id=program_id,
        )
        if state is not None:
            query = query.filter_by(state=state.value)
        return query.order_by(Membership.id.desc()).first()

    def counters(self, customer_id: int) -> VisitCounters:
        row = self.session.execute(
            select(Customer.current_points, Customer.lifetime_points)
            .where(Customer.id == customer_id)
        ).one()
        return VisitCounters(current_points=row[0], lifetime_points=row[1])

    # ==================== IDEMPOTENCY ====================

    def record_visit(
        self,
        customer_id: int,
        tenant_id: int,
        program_type: ProgramType,
        now: Optional[datetime] = None
    ) -> Optional[Stamp]:
        """
        Insert today's visit row and commit it.

        Returns:
            The pending Stamp, or None when the daily uniqueness constraint
            fired (duplicate visit)
        """
        now = now or datetime.utcnow()
        stamp = Stamp(
            customer_id=customer_id,
            tenant_id=tenant_id,
            visit_date=now.date(),
            program_type=program_type.value,
            status=StampStatus.PENDING.value,
            created_at=now,
        )
        self.session.add(stamp)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(f'Duplicate visit for customer {customer_id} on {now.date()} (tenant {tenant_id})')
            return None
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f'Visit insert failed for customer {customer_id}: {e}')
            raise StoreError(original_error=e)
        return stamp

    def mark_stamp_applied(
        self,
        stamp_id: int,
        status: StampStatus = StampStatus.APPLIED,
        now: Optional[datetime] = None
    ) -> bool:
        """pending -> applied/reconciled/discarded. Does not commit."""
        result = self.session.execute(
            update(Stamp)
            .where(Stamp.id == stamp_id, Stamp.status == StampStatus.PENDING.value)
            .values(status=status.value, applied_at=now or datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ==================== COUNTERS ====================

    def increment_visit_counters(self, customer_id: int) -> None:
        """+1 on current balance and lifetime total. Does not commit."""
        self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(
                current_points=Customer.current_points + 1,
                lifetime_points=Customer.lifetime_points + 1,
            )
            .execution_options(synchronize_session=False)
        )

    def apply_gamification(self, customer_id: int, fields: Dict[str, object]) -> None:
        """Write tier/streak/last_visit_at. Does not commit."""
        if not fields:
            return
        self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )

    def stamp_and_maybe_reward(
        self,
        tenant_id: int,
        phone: str,
        program_id: int,
        goal: int,
        reward_description: str,
        gamification: Optional[Dict[str, object]] = None,
        now: Optional[datetime] = None
    ) -> StampCardTransition:
        """
        Atomic stamp-card transition keyed by (tenant_id, phone).

        In one transaction: insert today's visit row, increment the balance and
        lifetime total, reset the balance to 0 when it reaches `goal`, and
        insert exactly one Reward in that case. Concurrent calls for the same
        customer serialize on the visit row and the customer row.
        """
        now = now or datetime.utcnow()

        with self.unit_of_work('stamp-card transition'):
            customer_id = self.session.execute(
                select(Customer.id).where(Customer.tenant_id == tenant_id, Customer.phone == phone)
            ).scalar_one_or_none()
            if customer_id is None:
                raise NotFoundError('Cliente no encontrado. ¿Ya te registraste?', ErrorCode.CUSTOMER_NOT_FOUND)

            self.session.add(Stamp(
                customer_id=customer_id,
                tenant_id=tenant_id,
                visit_date=now.date(),
                program_type=ProgramType.STAMP_CARD.value,
                status=StampStatus.APPLIED.value,
                created_at=now,
                applied_at=now,
            ))
            try:
                self.session.flush()
            except IntegrityError:
                self.session.rollback()
                counters = self.counters(customer_id)
                logger.info(f'Duplicate stamp for customer {customer_id} on {now.date()} (tenant {tenant_id})')
                return StampCardTransition(
                    duplicate=True,
                    current_points=counters.current_points,
                    lifetime_points=counters.lifetime_points,
                )

            next_points = Customer.current_points + 1
            self.session.execute(
                update(Customer)
                .where(Customer.id == customer_id)
                .values(
                    current_points=case((next_points >= goal, 0), else_=next_points),
                    lifetime_points=Customer.lifetime_points + 1,
                    **(gamification or {})
                )
                .execution_options(synchronize_session=False)
            )
            counters = self.counters(customer_id)

            # Balance only returns to 0 through the reset branch (goal >= 1)
            goal_reached = counters.current_points == 0
            reward = None
            if goal_reached:
                issued = RewardIssuer(self.session).issue(
                    customer_id=customer_id,
                    tenant_id=tenant_id,
                    program_id=program_id,
                    description=reward_description,
                    prefix=REWARD_CODE_PREFIX,
                )
                reward = issued.to_dict()

            self.session.commit()

        return StampCardTransition(
            duplicate=False,
            current_points=counters.current_points,
            lifetime_points=counters.lifetime_points,
            goal_reached=goal_reached,
            reward=reward,
        )

    # ==================== MEMBERSHIP WALLET ====================

    def consume_pass(self, membership_id: int) -> Optional[int]:
        """
        Decrement remaining uses by one, flipping to 'usado' at 0.
        Does not commit.

        Returns:
            Remaining uses after the decrement, or None if the pass was not
            active or already exhausted
        """
        result = self.session.execute(
            update(Membership)
            .where(
                Membership.id == membership_id,
                Membership.state == MembershipState.ACTIVE.value,
                Membership.remaining_uses > 0,
            )
            .values(
                remaining_uses=Membership.remaining_uses - 1,
                state=case(
                    (Membership.remaining_uses - 1 <= 0, MembershipState.USED.value),
                    else_=Membership.state,
                ),
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self.session.execute(
            select(Membership.remaining_uses).where(Membership.id == membership_id)
        ).scalar_one()

    def debit_balance(self, membership_id: int, amount: int) -> Optional[int]:
        """
        Debit `amount` if the wallet is active and covers it, flipping to
        'usado' at 0. Does not commit.

        Returns:
            Balance after the debit, or None if the guard rejected it
        """
        result = self.session.execute(
            update(Membership)
            .where(
                Membership.id == membership_id,
                Membership.state == MembershipState.ACTIVE.value,
                Membership.balance >= amount,
            )
            .values(
                balance=Membership.balance - amount,
                state=case(
                    (Membership.balance - amount <= 0, MembershipState.USED.value),
                    else_=Membership.state,
                ),
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self.session.execute(
            select(Membership.balance).where(Membership.id == membership_id)
        ).scalar_one()

    def expire_membership(self, membership_id: int) -> bool:
        """One-way activo -> expirado, committed immediately."""
        with self.unit_of_work('membership expiry'):
            result = self.session.execute(
                update(Membership)
                .where(
                    Membership.id == membership_id,
                    Membership.state == MembershipState.ACTIVE.value,
                )
                .values(state=MembershipState.EXPIRED.value, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        return result.rowcount == 1

    # ==================== FINALIZATION ====================

    def finalize_visit(
        self,
        customer_id: int,
        stamp_id: Optional[int] = None,
        increment_points: bool = False,
        gamification: Optional[Dict[str, object]] = None,
        now: Optional[datetime] = None
    ) -> VisitCounters:
        """
        Apply the customer-side effects of a visit and commit everything
        pending in the session (wallet changes included).
        """
        with self.unit_of_work('visit finalization'):
            if increment_points:
                self.increment_visit_counters(customer_id)
            if gamification:
                self.apply_gamification(customer_id, gamification)
            if stamp_id is not None:
                self.mark_stamp_applied(stamp_id, StampStatus.APPLIED, now)
            counters = self.counters(customer_id)
            self.session.commit()
        return counters
