"""
Standardized error response utilities for the Vuelve API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE"
    }
}

Usage:
    from app.utils.errors import error_response, ErrorCode

    return error_response("Cliente no encontrado", ErrorCode.CUSTOMER_NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    LOCATION_REQUIRED = "LOCATION_REQUIRED"
    LOCATION_INVALID = "LOCATION_INVALID"
    AMOUNT_REQUIRED = "AMOUNT_REQUIRED"
    UNSUPPORTED_PROGRAM_TYPE = "UNSUPPORTED_PROGRAM_TYPE"

    # Policy (403 / 400)
    TOO_FAR = "TOO_FAR"
    TENANT_INACTIVE = "TENANT_INACTIVE"
    MEMBERSHIP_EXPIRED = "MEMBERSHIP_EXPIRED"
    PASS_EXHAUSTED = "PASS_EXHAUSTED"
    COUPON_EXPIRED = "COUPON_EXPIRED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    NO_ACTIVE_PROGRAM = "NO_ACTIVE_PROGRAM"
    NO_ACTIVE_MEMBERSHIP = "NO_ACTIVE_MEMBERSHIP"

    # Conflict (409)
    ALREADY_VISITED_TODAY = "ALREADY_VISITED_TODAY"
    COUPON_ALREADY_USED = "COUPON_ALREADY_USED"
    MEMBERSHIP_ALREADY_ACTIVE = "MEMBERSHIP_ALREADY_ACTIVE"

    # Server Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    extra: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code
        log_error: Whether to log the error
        extra: Additional machine-readable fields merged into the error body
               (e.g. the measured distance on a geofence rejection)

    Returns:
        Tuple of (response, status_code) for Flask
    """
    code_value = code.value if isinstance(code, ErrorCode) else code

    if log_error and status_code >= 500:
        logger.error(f"API Error [{code_value}]: {message}")
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code_value}]: {message}")

    body = {
        "message": message,
        "code": code_value
    }
    if extra:
        body.update(extra)

    return jsonify({"error": body}), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False)


def internal_error(message: str = "Error interno") -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True)
