"""
Database models for the Vuelve loyalty platform.
Tenants, programs, customers and the visit ledger.
"""
from .tenant import Tenant
from .program import (
    Program,
    ProgramType,
    SINGLE_VISIT_PER_DAY_TYPES,
    MULTI_VISIT_PER_DAY_TYPES,
)
from .customer import Customer
from .stamp import Stamp, StampStatus
from .membership import Membership, MembershipState
from .reward import Reward
from .review_request import ReviewRequest, ReviewRequestStatus

__all__ = [
    'Tenant',
    'Program',
    'ProgramType',
    'SINGLE_VISIT_PER_DAY_TYPES',
    'MULTI_VISIT_PER_DAY_TYPES',
    'Customer',
    'Stamp',
    'StampStatus',
    'Membership',
    'MembershipState',
    'Reward',
    'ReviewRequest',
    'ReviewRequestStatus',
]
