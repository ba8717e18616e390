"""
Side-effect notifier for the visit engine.

After a visit succeeds:
- a tenant-branded push notification goes out through the push gateway
- a "how was your visit?" review request is scheduled a few hours later

Both are best effort: failures are logged and never reach the visit response.

Usage:
    notifier = NotificationService.from_app(current_app)
    notifier.notify_visit(ctx, outcome)
"""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.review_request import ReviewRequest

logger = logging.getLogger(__name__)

TITLE_MIN = 6
TITLE_MAX = 45
BODY_MIN = 12
BODY_MAX = 140

DEFAULT_TITLE = 'Actualización de tu tarjeta'
DEFAULT_BODY = 'Revisa tu tarjeta para ver esta actualización.'
TITLE_PAD = 'ahora'
BODY_PAD = 'Abre tu tarjeta para más detalle.'

REVIEW_TITLE = '¿Cómo estuvo tu visita?'

# Shared pool for fire-and-forget pushes
_push_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix='push')


# ==================== Message normalization ====================

@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str


def _collapse_spaces(text: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def _clamp(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f'{text[:max(0, limit - 1)].strip()}…'


def normalize_push_message(title: Optional[str], body: Optional[str]) -> PushMessage:
    """
    Fit a push message to what wallet passes display well.

    Titles end up 6-45 characters, bodies 12-140. Empty texts get a default,
    short texts are padded, long ones are cut with an ellipsis.
    """
    title = _collapse_spaces(title) or DEFAULT_TITLE
    body = _collapse_spaces(body) or DEFAULT_BODY

    if len(title) < TITLE_MIN:
        title = f'{title} {TITLE_PAD}'
    if len(body) < BODY_MIN:
        body = f'{body} {BODY_PAD}'

    return PushMessage(title=_clamp(title, TITLE_MAX), body=_clamp(body, BODY_MAX))


# ==================== Push gateway ====================

class PushGateway:
    """
    Outbound push adapter.

    Usage:
        gateway = PushGateway(url, token)
        result = gateway.send_push(customer_id, 'cafe-central', 'Café Central', '¡Punto sumado!')
        if not result['success']:
            ...
    """

    def __init__(self, url: str, token: str = None, timeout: int = 10):
        self.url = url
        self.token = token
        self.timeout = timeout

    def is_enabled(self) -> bool:
        return bool(self.url)

    def _get_headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def send_push(self, customer_id: int, tenant_slug: str, title: str, body: str) -> Dict[str, Any]:
        """
        Send one push notification.

        Returns:
            Dict with success status and error message if any
        """
        if not self.is_enabled():
            return {'success': False, 'error': 'Push gateway not configured'}

        message = normalize_push_message(title, body)
        payload = {
            'customer_id': customer_id,
            'tenant_slug': tenant_slug,
            'title': message.title,
            'body': message.body,
        }

        try:
            response = requests.post(
                self.url,
                headers=self._get_headers(),
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f'Push to customer {customer_id} failed: {e}')
            return {'success': False, 'error': str(e)}

        if response.status_code in (200, 201, 202):
            return {'success': True}

        logger.warning(f'Push gateway returned {response.status_code} for customer {customer_id}')
        return {'success': False, 'error': f'API error: {response.status_code}'}


# ==================== Notifier ====================

class NotificationService:
    """Fire-and-forget side effects of an accepted visit."""

    def __init__(
        self,
        gateway: PushGateway,
        review_delay: timedelta = timedelta(hours=2),
        dispatch_async: bool = True
    ):
        self.gateway = gateway
        self.review_delay = review_delay
        self.dispatch_async = dispatch_async

    @classmethod
    def from_app(cls, app) -> 'NotificationService':
        config = app.config
        return cls(
            gateway=PushGateway(
                config.get('PUSH_GATEWAY_URL'),
                config.get('PUSH_GATEWAY_TOKEN'),
                timeout=config.get('PUSH_TIMEOUT_SECONDS', 10),
            ),
            review_delay=timedelta(hours=config.get('REVIEW_REQUEST_DELAY_HOURS', 2)),
            dispatch_async=config.get('PUSH_DISPATCH_ASYNC', True),
        )

    def notify_visit(self, ctx, outcome) -> None:
        """
        Push the visit result and, for a newly recorded visit, schedule the
        review request. Never raises.
        """
        self.send_push(ctx.customer.id, ctx.tenant_slug, ctx.tenant_name, outcome.push_body or outcome.message)

        if outcome.new_visit:
            self.schedule_review(ctx.tenant_id, ctx.customer.id, now=ctx.now)

    def send_push(self, customer_id: int, tenant_slug: str, title: str, body: str) -> None:
        try:
            if self.dispatch_async:
                future = _push_executor.submit(self.gateway.send_push, customer_id, tenant_slug, title, body)
                future.add_done_callback(_log_push_failure)
            else:
                result = self.gateway.send_push(customer_id, tenant_slug, title, body)
                if not result.get('success'):
                    logger.warning(f"Push to customer {customer_id} not delivered: {result.get('error')}")
        except Exception as e:
            logger.error(f'Push dispatch to customer {customer_id} failed: {e}')

    def schedule_review(self, tenant_id: int, customer_id: int, now: datetime = None) -> Optional[ReviewRequest]:
        """Insert a pending review request due `review_delay` from now."""
        now = now or datetime.utcnow()
        try:
            review = ReviewRequest(
                tenant_id=tenant_id,
                customer_id=customer_id,
                scheduled_for=now + self.review_delay,
            )
            db.session.add(review)
            db.session.commit()
            return review
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Could not schedule review request for customer {customer_id}: {e}')
            return None


def _log_push_failure(future) -> None:
    error = future.exception()
    if error is not None:
        logger.error(f'Async push failed: {error}')
        return
    result = future.result()
    if not result.get('success'):
        logger.warning(f"Async push not delivered: {result.get('error')}")


# ==================== Deferred review dispatch ====================

def dispatch_due_review_requests(gateway: PushGateway, app_url: str, now: datetime = None,
                                 limit: int = 100) -> Dict[str, int]:
    """
    Send every pending review request whose time has come.

    Returns:
        Dict with sent/failed counts
    """
    results = {'sent': 0, 'failed': 0}

    for review in ReviewRequest.get_due(now=now, limit=limit):
        tenant = review.tenant
        body = f'Cuéntanos qué te pareció {tenant.name}: {app_url.rstrip("/")}/review/{tenant.slug}'
        result = gateway.send_push(review.customer_id, tenant.slug, REVIEW_TITLE, body)

        if result.get('success'):
            review.mark_sent()
            results['sent'] += 1
        else:
            review.mark_failed(result.get('error'))
            results['failed'] += 1

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f'Could not persist review dispatch results: {e}')
        raise

    if results['sent'] or results['failed']:
        logger.info(f"Review requests dispatched: {results['sent']} sent, {results['failed']} failed")
    return results
