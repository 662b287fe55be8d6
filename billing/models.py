from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from accounts.models import ProfileKind


class OrderKind(str, Enum):
    USER_SUBSCRIPTION = "user_subscription"
    SHOP_SUBSCRIPTION = "shop_subscription"

    @property
    def profile_kind(self) -> ProfileKind:
        return ProfileKind.SERVICE if self == OrderKind.USER_SUBSCRIPTION else ProfileKind.SHOP


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentOrder(BaseModel):
    id: UUID
    order_id: str
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    identity_id: UUID
    kind: OrderKind
    amount: int = Field(..., description="Amount in paise")
    currency: str = "INR"
    status: OrderStatus = OrderStatus.PENDING
    profile_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionStatus(str, Enum):
    CREATED = "CREATED"
    AUTHENTICATED = "AUTHENTICATED"
    ACTIVE = "ACTIVE"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in (SubscriptionStatus.CANCELLED, SubscriptionStatus.COMPLETED, SubscriptionStatus.EXPIRED)


class PlanKind(str, Enum):
    SERVICE = "SERVICE"
    SHOP = "SHOP"

    @classmethod
    def parse(cls, value: Any) -> Optional["PlanKind"]:
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None

    @property
    def profile_kind(self) -> ProfileKind:
        return ProfileKind.SERVICE if self == PlanKind.SERVICE else ProfileKind.SHOP


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class RecurringSubscription(BaseModel):
    id: UUID
    gateway_subscription_id: str
    gateway_plan_id: str
    gateway_customer_id: Optional[str] = None
    identity_id: UUID
    plan_kind: PlanKind
    status: SubscriptionStatus = SubscriptionStatus.CREATED
    subscription_start: Optional[datetime] = None
    subscription_expiry: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecurringPayment(BaseModel):
    id: UUID
    subscription_id: UUID
    gateway_payment_id: str
    amount: Decimal = Field(..., description="Amount in rupees")
    status: str = "captured"
    paid_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateOrderRequest(BaseModel):
    type: Optional[str] = Field(default=None, description="user_subscription or shop_subscription")


class CreateOrderResponse(BaseModel):
    order_id: str
    gateway_order_id: str
    amount: int
    currency: str
    key_id: str


class VerifyOrderRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    order_id: Optional[str] = None
    type: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "razorpay_order_id": "order_Nx1",
            "razorpay_payment_id": "pay_Nx1",
            "razorpay_signature": "5f0c...",
            "order_id": "ord_1700000000000_a1b2c3d4",
            "type": "shop_subscription",
        }
    })


class VerifyOrderResponse(BaseModel):
    success: bool = True
    message: str
    kind: OrderKind
    subscription_end_date: datetime
    staged: bool = False


class CreateSubscriptionRequest(BaseModel):
    plan_type: Optional[str] = Field(default=None, description="SERVICE or SHOP, case-insensitive")
    user_id: Optional[UUID] = None


class CreateSubscriptionResponse(BaseModel):
    subscription_id: str
    status: SubscriptionStatus
    key_id: str


class WebhookOutcome(BaseModel):
    received: bool = True
    event: Optional[str] = None
    handled: bool = False
    detail: Optional[str] = None
