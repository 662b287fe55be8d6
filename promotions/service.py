from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from accounts.storage import InMemoryStorage
from core.clock import Clock, local_now
from core.errors import NotFoundError, ValidationError

from .models import CreatePromotionRequest, CtaType, Promotion, UpdatePromotionRequest

logger = structlog.get_logger(__name__)

_datetime_adapter = TypeAdapter(datetime)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def parse_cta_type(value: Any) -> Optional[CtaType]:
    try:
        return CtaType(str(value).strip().lower()) if value else None
    except ValueError:
        return None


def _promotion_lock_key(promotion_id: UUID) -> str:
    return f"promotion:{promotion_id}"


class PromotionService:
    """Time-windowed banners shown on the home screen.

    A promotion is live from `start_date` until the end of the calendar day
    of `end_date`; admins see every promotion, expired ones included.
    """

    def __init__(self, storage: InMemoryStorage, clock: Clock = local_now):
        self.storage = storage
        self.clock = clock

    def _parse_date(self, value: Any, now: datetime) -> datetime:
        try:
            parsed = _datetime_adapter.validate_python(value)
        except PydanticValidationError:
            raise ValidationError("Invalid date format")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=now.tzinfo)
        return parsed

    def _get(self, promotion_id: UUID) -> Promotion:
        data = self.storage.get_promotion(promotion_id)
        if not data:
            raise NotFoundError("Promotion not found")
        return Promotion(**data)

    def create_promotion(self, request: CreatePromotionRequest) -> Promotion:
        title = _clean(request.title)
        if not title:
            raise ValidationError("Title is required")
        if not _clean(request.start_date):
            raise ValidationError("Start date is required")
        if not _clean(request.end_date):
            raise ValidationError("End date is required")

        now = self.clock()
        start = self._parse_date(request.start_date.strip(), now)
        end = self._parse_date(request.end_date.strip(), now)
        if end < start:
            raise ValidationError("End date must be after start date")

        promotion = Promotion(
            id=uuid4(),
            title=title,
            description=_clean(request.description) or "",
            start_date=start,
            end_date=end,
            image_url=_clean(request.image_url),
            cta_type=parse_cta_type(request.cta_type),
            cta_value=_clean(request.cta_value),
            cta_label=_clean(request.cta_label),
            cta_message=_clean(request.cta_message),
            created_at=now,
            updated_at=now,
        )
        self.storage.save_promotion(promotion.model_dump())
        logger.info("promotion_created", promotion_id=str(promotion.id), end_date=end.isoformat())
        return promotion

    def update_promotion(self, promotion_id: UUID, request: UpdatePromotionRequest) -> Promotion:
        changes = request.model_dump(exclude_unset=True)

        with self.storage.locked(_promotion_lock_key(promotion_id)):
            promotion = self._get(promotion_id)
            now = self.clock()

            if "title" in changes:
                promotion.title = _clean(changes["title"]) or promotion.title
            if "description" in changes:
                promotion.description = _clean(changes["description"]) or ""
            if _clean(changes.get("start_date")):
                promotion.start_date = self._parse_date(changes["start_date"].strip(), now)
            if _clean(changes.get("end_date")):
                promotion.end_date = self._parse_date(changes["end_date"].strip(), now)
            if promotion.end_date < promotion.start_date:
                raise ValidationError("End date must be after start date")

            if request.remove_image:
                promotion.image_url = None
            elif "image_url" in changes:
                promotion.image_url = _clean(changes["image_url"])
            if "cta_type" in changes:
                promotion.cta_type = parse_cta_type(changes["cta_type"])
            for field in ("cta_value", "cta_label", "cta_message"):
                if field in changes:
                    setattr(promotion, field, _clean(changes[field]))

            promotion.updated_at = now
            self.storage.save_promotion(promotion.model_dump())

        logger.info("promotion_updated", promotion_id=str(promotion_id), fields=sorted(changes))
        return promotion

    def delete_promotion(self, promotion_id: UUID) -> None:
        with self.storage.locked(_promotion_lock_key(promotion_id)):
            if not self.storage.delete_promotion(promotion_id):
                raise NotFoundError("Promotion not found")
        logger.info("promotion_deleted", promotion_id=str(promotion_id))

    def list_active_promotions(self) -> list[Promotion]:
        now = self.clock()
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        promotions = [
            p for p in (Promotion(**data) for data in self.storage.list_promotions())
            if p.start_date <= now and p.end_date >= start_of_today
        ]
        promotions.sort(key=lambda p: p.start_date, reverse=True)
        return promotions

    def list_all_promotions(self) -> list[Promotion]:
        promotions = [Promotion(**data) for data in self.storage.list_promotions()]
        promotions.sort(key=lambda p: p.start_date, reverse=True)
        return promotions
