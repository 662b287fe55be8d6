"""
Promotions

Admin-managed banners with a start and end date. The public list carries
only promotions that have started and whose end date is today or later.
"""

from .models import CtaType, Promotion
from .service import PromotionService

__all__ = [
    "CtaType",
    "Promotion",
    "PromotionService",
]
