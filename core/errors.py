from typing import Optional


class DomainError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str, *, data: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}


class ValidationError(DomainError):
    status_code = 400
    kind = "validation_error"


class InsufficientBalanceError(ValidationError):
    kind = "insufficient_balance"


class SignatureVerificationError(ValidationError):
    kind = "signature_verification_failed"


class AuthenticationError(DomainError):
    status_code = 401
    kind = "authentication_error"


class AuthorizationError(DomainError):
    status_code = 403
    kind = "authorization_error"


class NotFoundError(DomainError):
    status_code = 404
    kind = "not_found"


class ConflictError(DomainError):
    status_code = 409
    kind = "conflict"


class RateLimitError(DomainError):
    status_code = 429
    kind = "rate_limited"


class UpstreamGatewayError(DomainError):
    status_code = 502
    kind = "upstream_gateway_error"

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, data: Optional[dict] = None):
        super().__init__(message, data=data)
        self.upstream_status = upstream_status


class ConfigurationError(DomainError):
    status_code = 503
    kind = "configuration_error"
