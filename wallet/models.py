from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from core.pagination import Pagination


class TransactionType(str, Enum):
    EARN = "earn"
    SPEND = "spend"


class GoldSource(str, Enum):
    REWARD_AD = "reward_ad"
    UNLOCK_PHONE = "unlock_phone"
    BOOST_SHOP = "boost_shop"
    REMOVE_ADS = "remove_ads"


class GoldTransaction(BaseModel):
    id: UUID
    identity_id: UUID
    type: TransactionType
    amount: int = Field(..., gt=0)
    source: GoldSource
    created_at: datetime
    sequence: int = 0

    model_config = ConfigDict(from_attributes=True)


class AdCreditResult(BaseModel):
    credited: bool
    gold_points: int
    ads_watched_today: int
    remaining_ads_today: int


class SpendResult(BaseModel):
    source: GoldSource
    gold_points: int
    charged: int = Field(0, description="Points deducted; 0 for premium accounts")
    premium: bool = False
    unlocked: Optional[bool] = None
    boost_expires: Optional[datetime] = None
    ad_free_until: Optional[datetime] = None
    transaction: Optional[GoldTransaction] = None


class WalletView(BaseModel):
    gold_points: int
    ads_watched_today: int
    remaining_ads_today: int
    is_premium: bool
    ad_free_until: Optional[datetime] = None
    transactions: list[GoldTransaction]
    pagination: Pagination


class BalanceAudit(BaseModel):
    identity_id: UUID
    cached_balance: int
    earned: int
    spent: int
    ledger_balance: int
    consistent: bool
