from uuid import UUID

from fastapi import APIRouter, Depends, Request

from accounts.deps import get_current_identity, require_admin
from accounts.models import Identity

from .models import (
    PendingWithdrawalView,
    ProcessWithdrawalRequest,
    ProcessWithdrawalResponse,
    ReferralHistoryResponse,
    ReferralSummary,
    WithdrawalRequest,
    WithdrawalResponse,
)
from .service import ReferralService

router = APIRouter(prefix="/api/referral", tags=["Referrals"])


def get_referral_service(request: Request) -> ReferralService:
    return request.app.state.referrals


@router.get("/me", response_model=ReferralSummary)
def get_referral_summary(
    identity: Identity = Depends(get_current_identity),
    referrals: ReferralService = Depends(get_referral_service),
) -> ReferralSummary:
    return referrals.get_summary(identity.id)


@router.get("/history", response_model=ReferralHistoryResponse)
def get_referral_history(
    limit: int = 50,
    offset: int = 0,
    identity: Identity = Depends(get_current_identity),
    referrals: ReferralService = Depends(get_referral_service),
) -> ReferralHistoryResponse:
    return referrals.get_history(identity.id, limit, offset)


@router.post("/request-refund", response_model=WithdrawalResponse)
def request_refund(
    request: WithdrawalRequest,
    identity: Identity = Depends(get_current_identity),
    referrals: ReferralService = Depends(get_referral_service),
) -> WithdrawalResponse:
    return referrals.request_withdrawal(
        identity.id,
        channel=request.withdrawal_type,
        payout_phone=request.withdrawal_phone,
        amount=request.amount,
    )


@router.get(
    "/withdrawal-requests",
    response_model=list[PendingWithdrawalView],
    dependencies=[Depends(require_admin)],
)
def list_withdrawal_requests(
    referrals: ReferralService = Depends(get_referral_service),
) -> list[PendingWithdrawalView]:
    return referrals.list_pending_withdrawals()


@router.patch(
    "/withdrawal-requests/{identity_id}",
    response_model=ProcessWithdrawalResponse,
    dependencies=[Depends(require_admin)],
)
def process_withdrawal_request(
    identity_id: UUID,
    request: ProcessWithdrawalRequest,
    referrals: ReferralService = Depends(get_referral_service),
) -> ProcessWithdrawalResponse:
    return referrals.process_withdrawal(identity_id, request.action)
