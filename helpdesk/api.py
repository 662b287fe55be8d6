from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from accounts.deps import get_current_identity, get_optional_identity
from accounts.models import Identity

from .models import ComplaintCreatedResponse, ComplaintPage, CreateComplaintRequest
from .service import HelpdeskService

router = APIRouter(prefix="/api/help", tags=["Help"])


def get_helpdesk_service(request: Request) -> HelpdeskService:
    return request.app.state.helpdesk


@router.post("", response_model=ComplaintCreatedResponse, status_code=status.HTTP_201_CREATED)
def submit_complaint(
    request: CreateComplaintRequest,
    identity: Optional[Identity] = Depends(get_optional_identity),
    helpdesk: HelpdeskService = Depends(get_helpdesk_service),
) -> ComplaintCreatedResponse:
    complaint = helpdesk.submit_complaint(request, identity.id if identity else None)
    return ComplaintCreatedResponse(data=complaint)


@router.get("", response_model=ComplaintPage)
def list_my_complaints(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    identity: Identity = Depends(get_current_identity),
    helpdesk: HelpdeskService = Depends(get_helpdesk_service),
) -> ComplaintPage:
    return helpdesk.list_my_complaints(identity.id, page, limit)
