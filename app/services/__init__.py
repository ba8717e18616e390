"""
Business logic services for the Vuelve loyalty platform.
"""
from .visit_service import VisitService
from .membership_service import MembershipService
from .notification_service import NotificationService, PushGateway
from .ledger import LedgerStore

__all__ = [
    'VisitService',
    'MembershipService',
    'NotificationService',
    'PushGateway',
    'LedgerStore',
]
