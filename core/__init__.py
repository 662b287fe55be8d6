"""
Shared plumbing for the listings ledger services.

- Domain error taxonomy mapped to HTTP status codes
- Environment-driven settings
- structlog configuration
- Bearer token and admin key checks
"""

from .config import Settings, get_settings
from .errors import (
    DomainError,
    ValidationError,
    InsufficientBalanceError,
    SignatureVerificationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    RateLimitError,
    UpstreamGatewayError,
    ConfigurationError,
)

__all__ = [
    "Settings",
    "get_settings",
    "DomainError",
    "ValidationError",
    "InsufficientBalanceError",
    "SignatureVerificationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "UpstreamGatewayError",
    "ConfigurationError",
]
