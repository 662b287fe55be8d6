from typing import Optional

from fastapi import Depends, Header, Request

from core.config import Settings
from core.errors import AuthenticationError, NotFoundError
from core.security import decode_access_token, verify_admin_key

from .models import Identity, Viewer
from .service import AccountService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_account_service(request: Request) -> AccountService:
    return request.app.state.accounts


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    accounts: AccountService = Depends(get_account_service),
) -> Identity:
    token = _bearer_token(authorization)
    if not token:
        raise AuthenticationError("Not authorized, no token")
    identity_id = decode_access_token(token, settings)
    try:
        return accounts.get_identity(identity_id)
    except NotFoundError:
        raise AuthenticationError("Not authorized, user not found")


def get_optional_identity(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    accounts: AccountService = Depends(get_account_service),
) -> Optional[Identity]:
    token = _bearer_token(authorization)
    if not token:
        return None
    try:
        identity_id = decode_access_token(token, settings)
        return accounts.get_identity(identity_id)
    except (AuthenticationError, NotFoundError):
        return None


def get_viewer(identity: Optional[Identity] = Depends(get_optional_identity)) -> Viewer:
    return Viewer.authenticated() if identity else Viewer.anonymous()


def require_admin(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    verify_admin_key(x_admin_key, settings)
