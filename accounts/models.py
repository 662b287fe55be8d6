from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from core.pagination import Pagination


class ProfileKind(str, Enum):
    SERVICE = "service"
    SHOP = "shop"


class ProfileStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class WithdrawalChannel(str, Enum):
    PHONEPE = "phonepe"
    GPAY = "gpay"


class PendingWithdrawal(BaseModel):
    amount: Decimal
    channel: WithdrawalChannel
    payout_phone: str
    requested_at: datetime


class Identity(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    credential_hash: str = Field(default="", repr=False)
    service_profile_id: Optional[UUID] = None
    shop_profile_id: Optional[UUID] = None
    gold_points: int = Field(default=0, ge=0)
    ads_watched_today: int = Field(default=0, ge=0)
    last_ad_watch_date: Optional[datetime] = None
    is_premium: bool = False
    ad_free_until: Optional[datetime] = None
    referral_code: Optional[str] = None
    referral_balance: Decimal = Field(default=Decimal("0"), ge=0)
    referred_by: Optional[UUID] = None
    pending_withdrawal: Optional[PendingWithdrawal] = None
    gateway_customer_id: Optional[str] = None
    pending_service_subscription_end: Optional[datetime] = None
    pending_shop_subscription_end: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def profile_id_for(self, kind: ProfileKind) -> Optional[UUID]:
        return self.service_profile_id if kind == ProfileKind.SERVICE else self.shop_profile_id

    def pending_end_for(self, kind: ProfileKind) -> Optional[datetime]:
        if kind == ProfileKind.SERVICE:
            return self.pending_service_subscription_end
        return self.pending_shop_subscription_end


def pending_end_field(kind: ProfileKind) -> str:
    if kind == ProfileKind.SERVICE:
        return "pending_service_subscription_end"
    return "pending_shop_subscription_end"


class ListingProfile(BaseModel):
    """Fields shared by both profile kinds.

    `PUBLIC_FIELDS` is an allow-list: anything not named there or in
    `CONTACT_FIELDS` never leaves the service through `to_public_view`.
    """

    PUBLIC_FIELDS: ClassVar[frozenset[str]] = frozenset()
    CONTACT_FIELDS: ClassVar[frozenset[str]] = frozenset({"phone_number"})

    id: UUID
    identity_id: UUID
    address: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    phone_number: Optional[str] = None
    status: ProfileStatus = ProfileStatus.ACTIVE
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def is_listed(self, now: datetime) -> bool:
        if self.status == ProfileStatus.DISABLED:
            return False
        return self.subscription_end_date is not None and self.subscription_end_date >= now


class ServiceProviderProfile(ListingProfile):
    PUBLIC_FIELDS: ClassVar[frozenset[str]] = frozenset({
        "id", "user_name", "service_provided", "address", "state", "district",
        "city", "pincode", "profile_image", "subscription_end_date", "created_at",
    })

    user_name: str
    service_provided: str
    profile_image: Optional[str] = None


class DayHours(BaseModel):
    open: Optional[str] = None
    close: Optional[str] = None


class ShopProfile(ListingProfile):
    PUBLIC_FIELDS: ClassVar[frozenset[str]] = frozenset({
        "id", "shop_name", "address", "state", "district", "city", "pincode",
        "images", "opening_hours", "boost_expires", "subscription_end_date", "created_at",
    })
    CONTACT_FIELDS: ClassVar[frozenset[str]] = frozenset({"phone_number", "whatsapp_number"})

    shop_name: str
    whatsapp_number: Optional[str] = None
    images: list[str] = Field(default_factory=list, max_length=5)
    opening_hours: Optional[dict[str, DayHours]] = None
    boost_expires: Optional[datetime] = None


@dataclass(frozen=True)
class Viewer:
    can_view_contact: bool = False
    is_admin: bool = False

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls()

    @classmethod
    def authenticated(cls) -> "Viewer":
        return cls(can_view_contact=True)

    @classmethod
    def admin(cls) -> "Viewer":
        return cls(can_view_contact=True, is_admin=True)


def to_public_view(profile: ListingProfile, viewer: Viewer) -> dict[str, Any]:
    if viewer.is_admin:
        return profile.model_dump(mode="json")
    fields = set(profile.PUBLIC_FIELDS)
    if viewer.can_view_contact:
        fields |= profile.CONTACT_FIELDS
    return profile.model_dump(mode="json", include=fields)


@dataclass(frozen=True)
class ProfileGrant:
    profile_id: UUID
    kind: ProfileKind


@dataclass(frozen=True)
class StagedGrant:
    identity_id: UUID
    kind: ProfileKind


GrantTarget = Union[ProfileGrant, StagedGrant]


class RegisterServiceProviderRequest(BaseModel):
    user_name: str
    service_provided: str
    state: str
    district: str
    city: str
    pincode: str
    address: Optional[str] = None
    phone_number: Optional[str] = None
    profile_image: Optional[str] = Field(default=None, description="URL returned by the image upload service")


class UpdateServiceProviderRequest(BaseModel):
    user_name: Optional[str] = None
    service_provided: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    phone_number: Optional[str] = None
    profile_image: Optional[str] = None


class RegisterShopRequest(BaseModel):
    shop_name: str
    address: str
    state: str
    district: str
    city: str
    pincode: str
    whatsapp_number: Optional[str] = None
    images: list[str] = Field(default_factory=list, description="Up to 5 image URLs")
    opening_hours: Optional[dict[str, Any]] = None


class UpdateShopRequest(BaseModel):
    shop_name: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    whatsapp_number: Optional[str] = None
    images: Optional[list[str]] = None
    opening_hours: Optional[dict[str, Any]] = None


class UpdateProfileStatusRequest(BaseModel):
    status: ProfileStatus


class ProfileQuery(BaseModel):
    search: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    pincode: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None


class ProfilePage(BaseModel):
    data: list[dict[str, Any]]
    pagination: Pagination


class IdentitySummary(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    referral_code: Optional[str] = None
    referral_balance: Decimal
    referral_refund_requested_at: Optional[datetime] = None
    gold_points: int
    is_premium: bool
    ad_free_until: Optional[datetime] = None


class AccountOverview(BaseModel):
    user: IdentitySummary
    service_profile: Optional[ServiceProviderProfile] = None
    shop_profile: Optional[ShopProfile] = None
