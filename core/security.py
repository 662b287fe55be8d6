import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from .config import Settings
from .errors import AuthenticationError, AuthorizationError, ConfigurationError


def _jwt_secret(settings: Settings) -> str:
    secret = settings.JWT_SECRET.strip()
    if not secret:
        raise ConfigurationError("JWT_SECRET is not configured")
    return secret


def create_access_token(identity_id: UUID, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=7))
    to_encode = {"sub": str(identity_id), "exp": expire}
    return jwt.encode(to_encode, _jwt_secret(settings), algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> UUID:
    secret = _jwt_secret(settings)
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
        return UUID(str(payload["sub"]))
    except (JWTError, KeyError, ValueError):
        raise AuthenticationError("Not authorized, invalid token")


def verify_admin_key(provided: Optional[str], settings: Settings) -> None:
    expected = settings.ADMIN_API_KEY.strip()
    if not expected:
        raise ConfigurationError("ADMIN_API_KEY is not configured")
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthorizationError("Admin access required")
