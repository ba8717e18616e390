"""
Visit API endpoint.

POST /api/stamp records one customer visit against the tenant's active
loyalty program.
"""
import logging
from flask import Blueprint, request, jsonify

from ..extensions import db
from ..services.visit_service import VisitService
from ..utils.errors import ErrorCode, bad_request, error_response, internal_error
from ..utils.exceptions import LoyaltyError

logger = logging.getLogger(__name__)

stamp_bp = Blueprint('stamp', __name__)


def first_present(data: dict, *keys):
    """Value of the first key present and non-empty, or None."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return None


def parse_tenant_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def render_loyalty_error(e: LoyaltyError):
    return error_response(e.message, e.code, e.status_code, extra=e.extra)


@stamp_bp.route('', methods=['POST'])
def record_visit():
    """
    Record a visit.

    Request body:
        tenant_id: Tenant ID
        whatsapp / customer_phone: Customer phone number
        monto_compra / purchase_amount: Purchase amount (cashback, regalo)
        lat, lng / client_lat, client_lng: Client position (required when the
                                           tenant has a geofence)

    Returns:
        Type-specific visit result; 409 for a repeat visit on the same day
    """
    data = request.get_json(silent=True) or {}

    raw_tenant_id = first_present(data, 'tenant_id')
    phone = first_present(data, 'whatsapp', 'customer_phone')
    if raw_tenant_id is None or phone is None:
        return bad_request('Faltan campos: tenant_id, whatsapp', ErrorCode.MISSING_FIELD)

    tenant_id = parse_tenant_id(raw_tenant_id)
    if tenant_id is None:
        return bad_request('tenant_id inválido', ErrorCode.INVALID_FIELD)

    try:
        outcome = VisitService().process_visit(
            tenant_id=tenant_id,
            phone=str(phone).strip(),
            purchase_amount=first_present(data, 'monto_compra', 'purchase_amount'),
            client_lat=first_present(data, 'lat', 'client_lat'),
            client_lng=first_present(data, 'lng', 'client_lng'),
        )
    except LoyaltyError as e:
        return render_loyalty_error(e)
    except Exception as e:
        db.session.rollback()
        logger.exception(f'Unexpected error recording visit for tenant {tenant_id}: {e}')
        return internal_error()

    body, status_code = outcome.to_response()
    return jsonify(body), status_code
