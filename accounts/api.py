from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status

from .deps import get_account_service, get_current_identity, get_viewer, require_admin
from .models import (
    AccountOverview,
    Identity,
    ProfileKind,
    ProfilePage,
    ProfileQuery,
    RegisterServiceProviderRequest,
    RegisterShopRequest,
    ServiceProviderProfile,
    ShopProfile,
    UpdateProfileStatusRequest,
    UpdateServiceProviderRequest,
    UpdateShopRequest,
    Viewer,
    to_public_view,
)
from .service import AccountService

router = APIRouter(prefix="/api")


@router.get("/auth/me", response_model=AccountOverview, tags=["Auth"])
def get_me(
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> AccountOverview:
    return accounts.get_account_overview(identity.id)


@router.post(
    "/auth/register-service-provider",
    response_model=ServiceProviderProfile,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"],
)
def register_service_provider(
    request: RegisterServiceProviderRequest,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> ServiceProviderProfile:
    return accounts.register_service_provider(identity.id, request)


@router.patch("/auth/service-provider", response_model=ServiceProviderProfile, tags=["Auth"])
def update_service_provider(
    request: UpdateServiceProviderRequest,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> ServiceProviderProfile:
    return accounts.update_service_provider(identity.id, request)


@router.post("/auth/register-shop", response_model=ShopProfile, status_code=status.HTTP_201_CREATED, tags=["Auth"])
def register_shop(
    request: RegisterShopRequest,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> ShopProfile:
    return accounts.register_shop(identity.id, request)


@router.patch("/auth/shop", response_model=ShopProfile, tags=["Auth"])
def update_shop(
    request: UpdateShopRequest,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> ShopProfile:
    return accounts.update_shop(identity.id, request)


# Service provider listings

@router.get("/users", response_model=ProfilePage, tags=["Listings"])
def list_service_providers(
    query: ProfileQuery = Depends(),
    viewer: Viewer = Depends(get_viewer),
    accounts: AccountService = Depends(get_account_service),
) -> ProfilePage:
    return accounts.list_listed_profiles(ProfileKind.SERVICE, query, viewer)


@router.get("/users/all", response_model=ProfilePage, tags=["Admin"], dependencies=[Depends(require_admin)])
def list_all_service_providers(
    query: ProfileQuery = Depends(),
    accounts: AccountService = Depends(get_account_service),
) -> ProfilePage:
    return accounts.list_all_profiles(ProfileKind.SERVICE, query)


@router.get("/users/{profile_id}", tags=["Listings"])
def get_service_provider(
    profile_id: UUID,
    viewer: Viewer = Depends(get_viewer),
    accounts: AccountService = Depends(get_account_service),
) -> dict[str, Any]:
    return accounts.get_profile(ProfileKind.SERVICE, profile_id, viewer)


@router.patch("/users/{profile_id}/status", tags=["Admin"], dependencies=[Depends(require_admin)])
def set_service_provider_status(
    profile_id: UUID,
    request: UpdateProfileStatusRequest,
    accounts: AccountService = Depends(get_account_service),
) -> dict[str, Any]:
    profile = accounts.set_profile_status(ProfileKind.SERVICE, profile_id, request.status)
    return to_public_view(profile, Viewer.admin())


# Shop listings

@router.get("/shops", response_model=ProfilePage, tags=["Listings"])
def list_shops(
    query: ProfileQuery = Depends(),
    viewer: Viewer = Depends(get_viewer),
    accounts: AccountService = Depends(get_account_service),
) -> ProfilePage:
    return accounts.list_listed_profiles(ProfileKind.SHOP, query, viewer)


@router.get("/shops/all", response_model=ProfilePage, tags=["Admin"], dependencies=[Depends(require_admin)])
def list_all_shops(
    query: ProfileQuery = Depends(),
    accounts: AccountService = Depends(get_account_service),
) -> ProfilePage:
    return accounts.list_all_profiles(ProfileKind.SHOP, query)


@router.get("/shops/{profile_id}", tags=["Listings"])
def get_shop(
    profile_id: UUID,
    viewer: Viewer = Depends(get_viewer),
    accounts: AccountService = Depends(get_account_service),
) -> dict[str, Any]:
    return accounts.get_profile(ProfileKind.SHOP, profile_id, viewer)


@router.patch("/shops/{profile_id}/status", tags=["Admin"], dependencies=[Depends(require_admin)])
def set_shop_status(
    profile_id: UUID,
    request: UpdateProfileStatusRequest,
    accounts: AccountService = Depends(get_account_service),
) -> dict[str, Any]:
    profile = accounts.set_profile_status(ProfileKind.SHOP, profile_id, request.status)
    return to_public_view(profile, Viewer.admin())
