"""
Utility modules for the Vuelve loyalty platform.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    internal_error
)
from .exceptions import (
    LoyaltyError,
    ValidationError,
    NotFoundError,
    PolicyError,
    InsufficientBalanceError,
    ConflictError,
    StoreError
)
