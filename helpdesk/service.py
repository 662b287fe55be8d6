import re
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from accounts.storage import InMemoryStorage
from core.clock import Clock, local_now
from core.errors import ValidationError
from core.pagination import clamp_page, paginate

from .models import Complaint, ComplaintPage, CreateComplaintRequest

logger = structlog.get_logger(__name__)

PAGE_DEFAULT_LIMIT = 10
PAGE_MAX_LIMIT = 100
EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


class HelpdeskService:
    def __init__(self, storage: InMemoryStorage, clock: Clock = local_now):
        self.storage = storage
        self.clock = clock

    def submit_complaint(self, request: CreateComplaintRequest, identity_id: Optional[UUID] = None) -> Complaint:
        """Record a support request; signed-in callers get it linked to their account."""
        name = _clean(request.name)
        subject = _clean(request.subject)
        message = _clean(request.message)
        email = _clean(request.email)
        phone_number = _clean(request.phone_number)

        if not name:
            raise ValidationError("Name is required")
        if not subject:
            raise ValidationError("Subject is required")
        if not message:
            raise ValidationError("Message is required")
        if email and not EMAIL_PATTERN.fullmatch(email):
            raise ValidationError("Invalid email")
        if not email and not phone_number:
            raise ValidationError("Either email or phoneNumber is required for contact")

        now = self.clock()
        complaint = Complaint(
            id=uuid4(),
            name=name,
            email=email.lower() if email else None,
            phone_number=phone_number,
            subject=subject,
            message=message,
            identity_id=identity_id,
            created_at=now,
            updated_at=now,
        )
        self.storage.insert_complaint(complaint.model_dump())
        logger.info(
            "complaint_submitted",
            complaint_id=str(complaint.id),
            identity_id=str(identity_id) if identity_id else None,
        )
        return complaint

    def list_my_complaints(self, identity_id: UUID, page: Optional[Any] = None, limit: Optional[Any] = None) -> ComplaintPage:
        page, limit = clamp_page(page, limit, default_limit=PAGE_DEFAULT_LIMIT, max_limit=PAGE_MAX_LIMIT)
        complaints = [Complaint(**data) for data in self.storage.list_complaints(identity_id)]
        items, pagination = paginate(complaints, page, limit)
        return ComplaintPage(data=items, pagination=pagination)
