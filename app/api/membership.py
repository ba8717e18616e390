"""
Membership API endpoints.

Staff-facing activation of wallet-backed programs (multipase, membresia,
regalo) and lookup of a customer's active memberships.
"""
import logging
from flask import Blueprint, request, jsonify

from ..extensions import db
from ..services.membership_service import MembershipService
from ..utils.errors import ErrorCode, bad_request, internal_error
from ..utils.exceptions import LoyaltyError
from .stamp import first_present, parse_tenant_id, render_loyalty_error

logger = logging.getLogger(__name__)

membership_bp = Blueprint('membership', __name__)


@membership_bp.route('', methods=['POST'])
def activate_membership():
    """
    Activate a membership for a customer.

    Request body:
        tenant_id: Tenant ID
        whatsapp: Customer phone number
        program_id: Active program to activate (optional)
        monto: Gift card load amount (regalo only)

    Returns:
        201 with the created membership
    """
    data = request.get_json(silent=True) or {}

    tenant_id = parse_tenant_id(first_present(data, 'tenant_id'))
    phone = first_present(data, 'whatsapp', 'customer_phone')
    if tenant_id is None or phone is None:
        return bad_request('Faltan campos: tenant_id, whatsapp', ErrorCode.MISSING_FIELD)

    try:
        result = MembershipService(tenant_id).activate(
            str(phone).strip(),
            program_id=parse_tenant_id(data.get('program_id')),
            amount=first_present(data, 'monto', 'amount'),
        )
    except LoyaltyError as e:
        return render_loyalty_error(e)
    except Exception as e:
        db.session.rollback()
        logger.exception(f'Unexpected error activating membership for tenant {tenant_id}: {e}')
        return internal_error()

    return jsonify(result), 201


@membership_bp.route('', methods=['GET'])
def list_memberships():
    """
    List a customer's active memberships.

    Query params:
        tenant_id: Tenant ID
        whatsapp: Customer phone number
    """
    tenant_id = parse_tenant_id(request.args.get('tenant_id'))
    phone = request.args.get('whatsapp') or request.args.get('customer_phone')
    if tenant_id is None or not phone:
        return bad_request('Faltan parámetros: tenant_id, whatsapp', ErrorCode.MISSING_FIELD)

    try:
        memberships = MembershipService(tenant_id).list_active(phone.strip())
    except LoyaltyError as e:
        return render_loyalty_error(e)

    return jsonify({'memberships': memberships})
