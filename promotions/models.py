from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CtaType(str, Enum):
    PHONE = "phone"
    WEBSITE = "website"
    WHATSAPP = "whatsapp"


class Promotion(BaseModel):
    id: UUID
    title: str
    description: str = ""
    start_date: datetime
    end_date: datetime
    image_url: Optional[str] = None
    cta_type: Optional[CtaType] = None
    cta_value: Optional[str] = None
    cta_label: Optional[str] = None
    cta_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreatePromotionRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    image_url: Optional[str] = None
    cta_type: Optional[str] = None
    cta_value: Optional[str] = None
    cta_label: Optional[str] = None
    cta_message: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Diwali week",
            "description": "Festive offers from local shops",
            "start_date": "2025-10-18T00:00:00+05:30",
            "end_date": "2025-10-25T23:59:59+05:30",
            "cta_type": "whatsapp",
            "cta_value": "9123456780",
            "cta_label": "Chat now",
        }
    })


class UpdatePromotionRequest(CreatePromotionRequest):
    remove_image: bool = False


class DeletePromotionResponse(BaseModel):
    success: bool = True
    message: str = "Promotion deleted"
