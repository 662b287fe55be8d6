import json
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union
from uuid import UUID, uuid4

import structlog

from core.clock import Clock, local_now
from core.errors import ConflictError, NotFoundError, ValidationError
from core.pagination import clamp_page, paginate

from .models import (
    AccountOverview,
    DayHours,
    GrantTarget,
    Identity,
    IdentitySummary,
    ListingProfile,
    ProfileGrant,
    ProfileKind,
    ProfilePage,
    ProfileQuery,
    ProfileStatus,
    RegisterServiceProviderRequest,
    RegisterShopRequest,
    ServiceProviderProfile,
    ShopProfile,
    StagedGrant,
    UpdateServiceProviderRequest,
    UpdateShopRequest,
    Viewer,
    pending_end_field,
    to_public_view,
)
from .storage import InMemoryStorage

logger = structlog.get_logger(__name__)

SUBSCRIPTION_DAYS = 30
MAX_SHOP_IMAGES = 5
PROFILE_PAGE_DEFAULT_LIMIT = 10
PROFILE_PAGE_MAX_LIMIT = 100
REFERRAL_CODE_ATTEMPTS = 32
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

PROFILE_MODELS: dict[ProfileKind, type[ListingProfile]] = {
    ProfileKind.SERVICE: ServiceProviderProfile,
    ProfileKind.SHOP: ShopProfile,
}

SEARCH_FIELDS = {
    ProfileKind.SERVICE: ("user_name", "address", "pincode", "district", "service_provided"),
    ProfileKind.SHOP: ("shop_name", "address", "pincode", "district", "state"),
}

NOT_FOUND_MESSAGES = {
    ProfileKind.SERVICE: "Service provider not found",
    ProfileKind.SHOP: "Shop not found",
}


def generate_referral_code() -> str:
    return secrets.token_hex(4).upper()


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def normalize_opening_hours(raw: Union[None, str, dict]) -> Optional[dict[str, DayHours]]:
    if not raw:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None
    hours = {}
    for day in WEEKDAYS:
        entry = raw.get(day)
        if not isinstance(entry, dict):
            continue
        opens, closes = _clean(entry.get("open")), _clean(entry.get("close"))
        if opens or closes:
            hours[day] = DayHours(open=opens, close=closes)
    return hours or None


class AccountService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        clock: Clock = local_now,
        code_generator: Callable[[], str] = generate_referral_code,
    ):
        self.storage = storage or InMemoryStorage()
        self.clock = clock
        self.code_generator = code_generator

    # Identities

    def register_identity(
        self,
        name: str,
        credential_hash: str,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        referral_code: Optional[str] = None,
    ) -> Identity:
        email = _clean(email)
        email = email.lower() if email else None
        phone_number = _clean(phone_number)
        if not email and not phone_number:
            raise ValidationError("Either email or phoneNumber is required")
        if not _clean(name):
            raise ValidationError("Name is required")

        referred_by = None
        code = _clean(referral_code)
        if code:
            referrer = self.storage.find_identity(referral_code=code.upper())
            if referrer:
                referred_by = referrer["id"]

        now = self.clock()
        identity = Identity(
            id=uuid4(),
            name=name.strip(),
            email=email,
            phone_number=phone_number,
            credential_hash=credential_hash,
            referred_by=referred_by,
            created_at=now,
            updated_at=now,
        )
        self.storage.insert_identity(identity.model_dump())
        logger.info("identity_registered", identity_id=str(identity.id), referred=referred_by is not None)

        self.ensure_referral_code(identity.id)
        return self.get_identity(identity.id)

    def get_identity(self, identity_id: UUID) -> Identity:
        data = self.storage.get_identity(identity_id)
        if not data:
            raise NotFoundError("User not found")
        return Identity(**data)

    def save_identity(self, identity: Identity) -> Identity:
        identity.updated_at = self.clock()
        return Identity(**self.storage.save_identity(identity.model_dump()))

    def ensure_referral_code(self, identity_id: UUID) -> str:
        with self.storage.locked(identity_id):
            identity = self.get_identity(identity_id)
            if identity.referral_code:
                return identity.referral_code

            for _ in range(REFERRAL_CODE_ATTEMPTS):
                code = self.code_generator()
                if self.storage.find_identity(referral_code=code):
                    continue
                identity.referral_code = code
                try:
                    self.save_identity(identity)
                except ConflictError:
                    continue
                logger.info("referral_code_assigned", identity_id=str(identity_id))
                return code
        raise ConflictError("Could not allocate a unique referral code")

    def get_account_overview(self, identity_id: UUID) -> AccountOverview:
        self.ensure_referral_code(identity_id)
        identity = self.get_identity(identity_id)
        service_profile = shop_profile = None
        if identity.service_profile_id:
            data = self.storage.get_profile(ProfileKind.SERVICE, identity.service_profile_id)
            service_profile = ServiceProviderProfile(**data) if data else None
        if identity.shop_profile_id:
            data = self.storage.get_profile(ProfileKind.SHOP, identity.shop_profile_id)
            shop_profile = ShopProfile(**data) if data else None

        pending = identity.pending_withdrawal
        return AccountOverview(
            user=IdentitySummary(
                id=identity.id,
                name=identity.name,
                email=identity.email,
                phone_number=identity.phone_number,
                referral_code=identity.referral_code,
                referral_balance=identity.referral_balance,
                referral_refund_requested_at=pending.requested_at if pending else None,
                gold_points=identity.gold_points,
                is_premium=identity.is_premium,
                ad_free_until=identity.ad_free_until,
            ),
            service_profile=service_profile,
            shop_profile=shop_profile,
        )

    # Profile registration

    def _consume_staged_window(
        self, identity: Identity, kind: ProfileKind, now: datetime
    ) -> tuple[Optional[datetime], Optional[datetime]]:
        pending = identity.pending_end_for(kind)
        setattr(identity, pending_end_field(kind), None)
        if pending and pending > now:
            logger.info("staged_grant_consumed", identity_id=str(identity.id), kind=kind.value)
            return pending - timedelta(days=SUBSCRIPTION_DAYS), pending
        return None, None

    def register_service_provider(
        self, identity_id: UUID, request: RegisterServiceProviderRequest
    ) -> ServiceProviderProfile:
        with self.storage.locked(identity_id):
            identity = self.get_identity(identity_id)
            phone = _clean(request.phone_number) or _clean(identity.phone_number)
            if not phone:
                raise ValidationError(
                    "Phone number is required. Use your login number or enter one in the form."
                )
            if identity.service_profile_id:
                raise ConflictError("You already have a service provider profile. Use edit to update.")

            user_name, service_provided = _clean(request.user_name), _clean(request.service_provided)
            if not user_name or not service_provided:
                raise ValidationError("userName and serviceProvided are required")
            location = {f: _clean(getattr(request, f)) for f in ("pincode", "state", "district", "city")}
            if not all(location.values()):
                raise ValidationError("pincode, state, district and city are required")

            now = self.clock()
            start, end = self._consume_staged_window(identity, ProfileKind.SERVICE, now)
            profile = ServiceProviderProfile(
                id=uuid4(),
                identity_id=identity.id,
                user_name=user_name,
                service_provided=service_provided,
                address=_clean(request.address),
                phone_number=phone,
                profile_image=_clean(request.profile_image),
                subscription_start_date=start,
                subscription_end_date=end,
                created_at=now,
                updated_at=now,
                **location,
            )
            self.storage.insert_profile(ProfileKind.SERVICE, profile.model_dump())
            identity.service_profile_id = profile.id
            self.save_identity(identity)

        logger.info("service_profile_registered", identity_id=str(identity_id), profile_id=str(profile.id))
        return profile

    def register_shop(self, identity_id: UUID, request: RegisterShopRequest) -> ShopProfile:
        with self.storage.locked(identity_id):
            identity = self.get_identity(identity_id)
            phone = _clean(identity.phone_number)
            if not phone:
                raise ValidationError(
                    "Your account must have a phone number to register a shop. Please log in with a phone number."
                )
            if identity.shop_profile_id:
                raise ConflictError("You already have a shop profile. Use edit to update.")

            fields = {
                f: _clean(getattr(request, f))
                for f in ("shop_name", "address", "pincode", "state", "district", "city")
            }
            if not all(fields.values()):
                raise ValidationError("shopName, address, pincode, state, district and city are required")
            images = [url for url in (request.images or []) if _clean(url)]
            if len(images) > MAX_SHOP_IMAGES:
                raise ValidationError(f"Maximum {MAX_SHOP_IMAGES} images allowed")

            now = self.clock()
            start, end = self._consume_staged_window(identity, ProfileKind.SHOP, now)
            profile = ShopProfile(
                id=uuid4(),
                identity_id=identity.id,
                phone_number=phone,
                whatsapp_number=_clean(request.whatsapp_number),
                images=images,
                opening_hours=normalize_opening_hours(request.opening_hours),
                subscription_start_date=start,
                subscription_end_date=end,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self.storage.insert_profile(ProfileKind.SHOP, profile.model_dump())
            identity.shop_profile_id = profile.id
            self.save_identity(identity)

        logger.info("shop_profile_registered", identity_id=str(identity_id), profile_id=str(profile.id))
        return profile

    # Profile updates

    def _owned_profile(self, identity: Identity, kind: ProfileKind) -> dict:
        profile_id = identity.profile_id_for(kind)
        data = self.storage.get_profile(kind, profile_id) if profile_id else None
        if not data:
            label = "service provider profile" if kind == ProfileKind.SERVICE else "shop profile"
            raise NotFoundError(f"You do not have a {label}. Register first.")
        return data

    def update_service_provider(
        self, identity_id: UUID, request: UpdateServiceProviderRequest
    ) -> ServiceProviderProfile:
        changes = request.model_dump(exclude_unset=True)
        with self.storage.locked(identity_id):
            identity = self.get_identity(identity_id)
            data = self._owned_profile(identity, ProfileKind.SERVICE)

            for field in ("user_name", "service_provided"):
                if _clean(changes.get(field)):
                    data[field] = _clean(changes[field])
            for field in ("address", "state", "district", "city", "pincode", "profile_image"):
                if field in changes:
                    data[field] = _clean(changes[field])
            if "phone_number" in changes:
                data["phone_number"] = _clean(changes["phone_number"]) or _clean(identity.phone_number)

            data["updated_at"] = self.clock()
            profile = ServiceProviderProfile(**data)
            self.storage.save_profile(ProfileKind.SERVICE, profile.model_dump())
        return profile

    def update_shop(self, identity_id: UUID, request: UpdateShopRequest) -> ShopProfile:
        changes = request.model_dump(exclude_unset=True)
        with self.storage.locked(identity_id):
            identity = self.get_identity(identity_id)
            data = self._owned_profile(identity, ProfileKind.SHOP)

            for field in ("shop_name", "address", "pincode", "state", "district"):
                if _clean(changes.get(field)):
                    data[field] = _clean(changes[field])
            for field in ("city", "whatsapp_number"):
                if field in changes:
                    data[field] = _clean(changes[field])
            if "opening_hours" in changes:
                data["opening_hours"] = normalize_opening_hours(changes["opening_hours"])
            if changes.get("images"):
                images = [url for url in changes["images"] if _clean(url)]
                if len(images) > MAX_SHOP_IMAGES:
                    raise ValidationError(f"Maximum {MAX_SHOP_IMAGES} images allowed")
                data["images"] = images
            data["phone_number"] = _clean(identity.phone_number) or data.get("phone_number")

            data["updated_at"] = self.clock()
            profile = ShopProfile(**data)
            self.storage.save_profile(ProfileKind.SHOP, profile.model_dump())
        return profile

    def get_owned_shop(self, identity_id: UUID) -> Optional[ShopProfile]:
        data = self.storage.find_profile_by_owner(ProfileKind.SHOP, identity_id)
        return ShopProfile(**data) if data else None

    def set_shop_boost(self, identity_id: UUID, until: datetime) -> ShopProfile:
        with self.storage.locked(identity_id):
            shop = self.get_owned_shop(identity_id)
            if not shop:
                raise NotFoundError("Shop profile not found")
            shop.boost_expires = until
            shop.updated_at = self.clock()
            self.storage.save_profile(ProfileKind.SHOP, shop.model_dump())
        return shop

    # Subscription windows

    def resolve_grant_target(
        self, identity_id: UUID, kind: ProfileKind, profile_id: Optional[UUID] = None
    ) -> GrantTarget:
        if profile_id and self.storage.get_profile(kind, profile_id):
            return ProfileGrant(profile_id=profile_id, kind=kind)
        identity = self.get_identity(identity_id)
        current = identity.profile_id_for(kind)
        if current and self.storage.get_profile(kind, current):
            return ProfileGrant(profile_id=current, kind=kind)
        return StagedGrant(identity_id=identity_id, kind=kind)

    def apply_grant(self, target: GrantTarget, end: datetime, start: Optional[datetime] = None) -> None:
        if isinstance(target, ProfileGrant):
            data = self.storage.get_profile(target.kind, target.profile_id)
            if not data:
                raise NotFoundError(NOT_FOUND_MESSAGES[target.kind])
            if start is not None:
                data["subscription_start_date"] = start
            data["subscription_end_date"] = end
            data["updated_at"] = self.clock()
            self.storage.save_profile(target.kind, data)
            return

        identity = self.get_identity(target.identity_id)
        field = pending_end_field(target.kind)
        staged = getattr(identity, field)
        setattr(identity, field, max(staged, end) if staged else end)
        self.save_identity(identity)

    def grant_subscription_window(
        self,
        identity_id: UUID,
        kind: ProfileKind,
        end: datetime,
        start: Optional[datetime] = None,
        profile_id: Optional[UUID] = None,
    ) -> GrantTarget:
        """Write a paid window onto the profile, or stage it on the identity.

        Runs under the identity lock, the same lock profile registration holds
        while consuming a staged window, so a grant is never dropped between
        the two.
        """
        with self.storage.locked(identity_id):
            target = self.resolve_grant_target(identity_id, kind, profile_id)
            self.apply_grant(target, end, start)
        logger.info(
            "subscription_window_granted",
            identity_id=str(identity_id),
            kind=kind.value,
            staged=isinstance(target, StagedGrant),
            end=end.isoformat(),
        )
        return target

    # Listings

    def _query_profiles(self, kind: ProfileKind, query: ProfileQuery) -> list[ListingProfile]:
        model = PROFILE_MODELS[kind]
        profiles = [model(**data) for data in self.storage.list_profiles(kind)]

        search = _clean(query.search)
        if search:
            needle = search.lower()
            profiles = [
                p for p in profiles
                if any(needle in str(getattr(p, f) or "").lower() for f in SEARCH_FIELDS[kind])
            ]
        for field in ("state", "district"):
            value = _clean(getattr(query, field))
            if value:
                profiles = [p for p in profiles if value.lower() in str(getattr(p, field) or "").lower()]
        pincode = _clean(query.pincode)
        if pincode:
            profiles = [p for p in profiles if p.pincode == pincode]

        profiles.sort(key=lambda p: p.created_at, reverse=True)
        return profiles

    def _page(self, profiles: list[ListingProfile], query: ProfileQuery, viewer: Viewer) -> ProfilePage:
        page, limit = clamp_page(
            query.page, query.limit,
            default_limit=PROFILE_PAGE_DEFAULT_LIMIT, max_limit=PROFILE_PAGE_MAX_LIMIT,
        )
        items, pagination = paginate(profiles, page, limit)
        return ProfilePage(data=[to_public_view(p, viewer) for p in items], pagination=pagination)

    def list_listed_profiles(self, kind: ProfileKind, query: ProfileQuery, viewer: Viewer) -> ProfilePage:
        now = self.clock()
        listed = [p for p in self._query_profiles(kind, query) if p.is_listed(now)]
        return self._page(listed, query, viewer)

    def list_all_profiles(self, kind: ProfileKind, query: ProfileQuery) -> ProfilePage:
        return self._page(self._query_profiles(kind, query), query, Viewer.admin())

    def get_profile_model(self, kind: ProfileKind, profile_id: UUID) -> ListingProfile:
        data = self.storage.get_profile(kind, profile_id)
        if not data:
            raise NotFoundError(NOT_FOUND_MESSAGES[kind])
        return PROFILE_MODELS[kind](**data)

    def get_profile(self, kind: ProfileKind, profile_id: UUID, viewer: Viewer) -> dict[str, Any]:
        return to_public_view(self.get_profile_model(kind, profile_id), viewer)

    def set_profile_status(self, kind: ProfileKind, profile_id: UUID, status: ProfileStatus) -> ListingProfile:
        owner_id = self.get_profile_model(kind, profile_id).identity_id
        with self.storage.locked(owner_id):
            profile = self.get_profile_model(kind, profile_id)
            profile.status = status
            profile.updated_at = self.clock()
            self.storage.save_profile(kind, profile.model_dump())
        logger.info("profile_status_changed", kind=kind.value, profile_id=str(profile_id), status=status.value)
        return profile
