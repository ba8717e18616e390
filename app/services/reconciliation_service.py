"""
Orphan visit reconciliation.

Non stamp-card handlers insert the visit row and apply its counter update in
separate commits. A failure in between leaves the row `pending`. This sweep
closes such rows once they are older than the grace window.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List

from ..models.customer import Customer
from ..models.program import ProgramType
from ..models.stamp import Stamp, StampStatus
from ..utils.exceptions import StoreError
from .gamification_service import GamificationSettings
from .ledger import LedgerStore
from .visit_handlers import get_handler

logger = logging.getLogger(__name__)


def find_orphan_visits(grace_minutes: int, now: datetime = None, limit: int = 500) -> List[Stamp]:
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=grace_minutes)
    return (
        Stamp.query
        .filter(Stamp.status == StampStatus.PENDING.value, Stamp.created_at <= cutoff)
        .order_by(Stamp.created_at.asc())
        .limit(limit)
        .all()
    )


def reconcile_orphan_visits(
    grace_minutes: int = 15,
    settings: GamificationSettings = None,
    now: datetime = None,
    dry_run: bool = False,
    ledger: LedgerStore = None
) -> Dict[str, int]:
    """
    Close pending visit rows past the grace window.

    Each row is settled in its own transaction; a failing row is logged and
    left pending for the next sweep.

    Returns:
        Dict with found/reconciled/discarded/errors counts
    """
    ledger = ledger or LedgerStore()
    settings = settings or GamificationSettings()
    now = now or datetime.utcnow()

    orphans = find_orphan_visits(grace_minutes, now=now)
    results = {'found': len(orphans), 'reconciled': 0, 'discarded': 0, 'errors': 0}
    if dry_run:
        return results

    stamp_ids = [stamp.id for stamp in orphans]
    for stamp_id in stamp_ids:
        stamp = ledger.session.get(Stamp, stamp_id)
        program_type = ProgramType.parse(stamp.program_type)
        handler = get_handler(program_type, ledger) if program_type else None
        customer = ledger.session.get(Customer, stamp.customer_id)

        try:
            with ledger.unit_of_work(f'reconcile visit {stamp_id}'):
                if handler is None or customer is None:
                    status = StampStatus.DISCARDED
                else:
                    status = handler.reconcile_orphan(stamp, customer, settings)
                ledger.mark_stamp_applied(stamp_id, status, now)
                ledger.session.commit()
        except StoreError:
            results['errors'] += 1
            continue

        if status == StampStatus.RECONCILED:
            results['reconciled'] += 1
        else:
            results['discarded'] += 1
        logger.info(f'Orphan visit {stamp_id} ({stamp.program_type}) -> {status.value}')

    return results
