"""
Custom exceptions for the visit engine.

Each exception carries a stable machine-readable code, the HTTP status it maps
to and optional extra fields for the caller (e.g. remaining balance).
"""
from .errors import ErrorCode


class LoyaltyError(Exception):
    """Base exception for all loyalty business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: ErrorCode, status_code: int = None, extra: dict = None):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}
        super().__init__(message)

    def to_dict(self):
        data = {'message': self.message, 'code': self.code.value}
        data.update(self.extra)
        return data


class ValidationError(LoyaltyError):
    """Missing or malformed input. Never retried."""

    status_code = 400

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_FIELD, extra: dict = None):
        super().__init__(message, code, extra=extra)


class NotFoundError(LoyaltyError):
    """Tenant, program, customer or membership absent."""

    status_code = 404

    def __init__(self, message: str, code: ErrorCode = ErrorCode.NOT_FOUND, extra: dict = None):
        super().__init__(message, code, extra=extra)


class PolicyError(LoyaltyError):
    """User-actionable rejection (geofence, expiry, exhausted pass...)."""

    status_code = 403


class InsufficientBalanceError(PolicyError):
    """Gift-card debit larger than the available balance."""

    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(
            f'Saldo insuficiente. Disponible: ${balance}, requerido: ${required}',
            ErrorCode.INSUFFICIENT_BALANCE,
            status_code=400,
            extra={'saldo': balance, 'requerido': required},
        )


class ConflictError(LoyaltyError):
    """State conflict (coupon already used, membership already active)."""

    status_code = 409


class StoreError(LoyaltyError):
    """Store or transaction failure. Safe for the caller to retry."""

    status_code = 500

    def __init__(self, message: str = 'Error interno', original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, ErrorCode.INTERNAL_ERROR, extra={'retryable': True})
