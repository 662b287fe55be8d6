from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from accounts.deps import require_admin

from .models import CreatePromotionRequest, DeletePromotionResponse, Promotion, UpdatePromotionRequest
from .service import PromotionService

router = APIRouter(prefix="/api/promotions", tags=["Promotions"])


def get_promotion_service(request: Request) -> PromotionService:
    return request.app.state.promotions


@router.get("", response_model=list[Promotion])
def list_active_promotions(promotions: PromotionService = Depends(get_promotion_service)) -> list[Promotion]:
    return promotions.list_active_promotions()


@router.get("/all", response_model=list[Promotion], dependencies=[Depends(require_admin)])
def list_all_promotions(promotions: PromotionService = Depends(get_promotion_service)) -> list[Promotion]:
    return promotions.list_all_promotions()


@router.post(
    "",
    response_model=Promotion,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_promotion(
    request: CreatePromotionRequest,
    promotions: PromotionService = Depends(get_promotion_service),
) -> Promotion:
    return promotions.create_promotion(request)


@router.patch("/{promotion_id}", response_model=Promotion, dependencies=[Depends(require_admin)])
def update_promotion(
    promotion_id: UUID,
    request: UpdatePromotionRequest,
    promotions: PromotionService = Depends(get_promotion_service),
) -> Promotion:
    return promotions.update_promotion(promotion_id, request)


@router.delete("/{promotion_id}", response_model=DeletePromotionResponse, dependencies=[Depends(require_admin)])
def delete_promotion(
    promotion_id: UUID,
    promotions: PromotionService = Depends(get_promotion_service),
) -> DeletePromotionResponse:
    promotions.delete_promotion(promotion_id)
    return DeletePromotionResponse()
