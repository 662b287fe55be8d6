from typing import Optional

from fastapi import APIRouter, Depends, Request

from accounts.deps import get_current_identity
from accounts.models import Identity

from .models import AdCreditResult, GoldSource, SpendResult, WalletView
from .service import WalletService

router = APIRouter(prefix="/api/gold", tags=["Gold"])


def get_wallet_service(request: Request) -> WalletService:
    return request.app.state.wallet


@router.get("/wallet", response_model=WalletView)
def get_wallet(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    identity: Identity = Depends(get_current_identity),
    wallet: WalletService = Depends(get_wallet_service),
) -> WalletView:
    return wallet.get_wallet(identity.id, page, limit)


@router.post("/ad-watched", response_model=AdCreditResult)
def ad_watched(
    identity: Identity = Depends(get_current_identity),
    wallet: WalletService = Depends(get_wallet_service),
) -> AdCreditResult:
    return wallet.credit_for_ad_watched(identity.id)


@router.post("/unlock-phone", response_model=SpendResult)
def unlock_phone(
    identity: Identity = Depends(get_current_identity),
    wallet: WalletService = Depends(get_wallet_service),
) -> SpendResult:
    return wallet.spend(identity.id, GoldSource.UNLOCK_PHONE)


@router.post("/boost-shop", response_model=SpendResult)
def boost_shop(
    identity: Identity = Depends(get_current_identity),
    wallet: WalletService = Depends(get_wallet_service),
) -> SpendResult:
    return wallet.spend(identity.id, GoldSource.BOOST_SHOP)


@router.post("/remove-ads", response_model=SpendResult)
def remove_ads(
    identity: Identity = Depends(get_current_identity),
    wallet: WalletService = Depends(get_wallet_service),
) -> SpendResult:
    return wallet.spend(identity.id, GoldSource.REMOVE_ADS)
