from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from core.pagination import Pagination


class ComplaintStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class Complaint(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    subject: str
    message: str
    identity_id: Optional[UUID] = None
    status: ComplaintStatus = ComplaintStatus.PENDING
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateComplaintRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class ComplaintCreatedResponse(BaseModel):
    success: bool = True
    message: str = "Complaint submitted successfully"
    data: Complaint


class ComplaintPage(BaseModel):
    data: list[Complaint]
    pagination: Pagination
