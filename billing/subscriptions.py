import re
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from accounts.models import Identity
from accounts.service import AccountService
from core.clock import Clock, local_now
from core.errors import (
    AuthorizationError,
    ConfigurationError,
    NotFoundError,
    UpstreamGatewayError,
    ValidationError,
)

from .gateway import GatewayProvider, RazorpayGateway
from .models import (
    CreateSubscriptionResponse,
    PlanKind,
    RecurringPayment,
    RecurringSubscription,
    SubscriptionStatus,
    TransitionOutcome,
)

logger = structlog.get_logger(__name__)

RENEWAL_DAYS = 30
MANDATE_START_DELAY_SECONDS = 60
CUSTOMER_NAME_MAX = 50
CUSTOMER_EMAIL_MAX = 64


def paise_to_rupees(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value)) / Decimal(100)
    except InvalidOperation:
        return Decimal("0")


def customer_contact(phone: Optional[str]) -> Optional[str]:
    digits = re.sub(r"\D", "", phone or "")[:15]
    if not digits:
        return None
    return f"91{digits}" if len(digits) == 10 else digits


def _subscription_lock_key(gateway_subscription_id: str) -> str:
    return f"subscription:{gateway_subscription_id}"


class SubscriptionService:
    """Recurring mandates and the webhook-driven state machine behind them.

    Creating a mandate never grants access; only `activated` and `charged`
    transitions write a subscription window through the account grant path.
    """

    def __init__(self, accounts: AccountService, gateway: GatewayProvider, clock: Clock = local_now):
        self.accounts = accounts
        self.storage = accounts.storage
        self.gateway = gateway
        self.settings = gateway.settings
        self.clock = clock

    def _plan_id(self, plan: PlanKind) -> str:
        plan_id = self.settings.RAZORPAY_PLAN_SERVICE if plan == PlanKind.SERVICE else self.settings.RAZORPAY_PLAN_SHOP
        if not plan_id.strip():
            raise ConfigurationError(f"Razorpay plan for {plan.value} is not configured")
        return plan_id.strip()

    def _get_or_create_customer(self, identity: Identity, gateway: RazorpayGateway) -> str:
        if identity.gateway_customer_id:
            return identity.gateway_customer_id

        name = (identity.name or "Customer").strip()[:CUSTOMER_NAME_MAX]
        email = (identity.email or f"user-{identity.id}@placeholder.local").strip()[:CUSTOMER_EMAIL_MAX]
        customer = gateway.create_customer(
            name=name,
            email=email,
            contact=customer_contact(identity.phone_number),
            notes={"global_user_id": str(identity.id)},
        )
        customer_id = customer.get("id")
        if not customer_id:
            raise UpstreamGatewayError("Razorpay did not return a customer id.")

        with self.storage.locked(identity.id):
            fresh = self.accounts.get_identity(identity.id)
            if fresh.gateway_customer_id:
                return fresh.gateway_customer_id
            fresh.gateway_customer_id = customer_id
            self.accounts.save_identity(fresh)
        logger.info("gateway_customer_created", identity_id=str(identity.id))
        return customer_id

    def create_subscription(
        self, caller_id: UUID, plan_kind: Any, identity_id: Optional[UUID] = None
    ) -> CreateSubscriptionResponse:
        if not plan_kind:
            raise ValidationError("plan_type is required")
        plan = PlanKind.parse(plan_kind)
        if plan is None:
            raise ValidationError("plan_type must be SERVICE or SHOP")
        target_id = identity_id or caller_id
        if target_id != caller_id:
            raise AuthorizationError("You can only create a subscription for yourself")

        plan_id = self._plan_id(plan)
        gateway = self.gateway.get()
        identity = self.accounts.get_identity(target_id)
        customer_id = self._get_or_create_customer(identity, gateway)

        now = self.clock()
        now_unix = int(now.timestamp())
        response = gateway.create_subscription(
            plan_id=plan_id,
            customer_id=customer_id,
            total_count=self.settings.SUBSCRIPTION_TOTAL_COUNT,
            start_at=now_unix + MANDATE_START_DELAY_SECONDS,
            expire_by=now_unix + RENEWAL_DAYS * 24 * 60 * 60,
            notes={"global_user_id": str(identity.id), "plan_type": plan.value},
        )
        gateway_subscription_id = response.get("id")
        if not gateway_subscription_id:
            raise UpstreamGatewayError("Razorpay did not return a subscription id.")

        subscription = RecurringSubscription(
            id=uuid4(),
            gateway_subscription_id=gateway_subscription_id,
            gateway_plan_id=plan_id,
            gateway_customer_id=customer_id,
            identity_id=identity.id,
            plan_kind=plan,
            created_at=now,
            updated_at=now,
        )
        self.storage.insert_subscription(subscription.model_dump())
        logger.info(
            "subscription_created",
            gateway_subscription_id=gateway_subscription_id,
            identity_id=str(identity.id),
            plan=plan.value,
        )
        return CreateSubscriptionResponse(
            subscription_id=gateway_subscription_id,
            status=subscription.status,
            key_id=self.gateway.key_id,
        )

    # Webhook transitions

    def _load(self, gateway_subscription_id: str) -> Optional[RecurringSubscription]:
        data = self.storage.get_subscription(gateway_subscription_id)
        return RecurringSubscription(**data) if data else None

    def _save(self, subscription: RecurringSubscription, now: datetime) -> None:
        subscription.updated_at = now
        self.storage.save_subscription(subscription.model_dump())

    def _set_status(
        self, gateway_subscription_id: Optional[str], status: SubscriptionStatus, unless_terminal: bool = False
    ) -> TransitionOutcome:
        if not gateway_subscription_id:
            return TransitionOutcome.IGNORED
        with self.storage.locked(_subscription_lock_key(gateway_subscription_id)):
            subscription = self._load(gateway_subscription_id)
            if subscription is None:
                return TransitionOutcome.IGNORED
            if unless_terminal and subscription.status.is_terminal:
                return TransitionOutcome.IGNORED
            previous = subscription.status
            subscription.status = status
            self._save(subscription, self.clock())
        logger.info(
            "subscription_status_changed",
            gateway_subscription_id=gateway_subscription_id,
            previous=previous.value,
            status=status.value,
        )
        return TransitionOutcome.APPLIED

    def authenticated(self, gateway_subscription_id: Optional[str]) -> TransitionOutcome:
        if not gateway_subscription_id:
            return TransitionOutcome.IGNORED
        with self.storage.locked(_subscription_lock_key(gateway_subscription_id)):
            subscription = self._load(gateway_subscription_id)
            if subscription is None or subscription.status != SubscriptionStatus.CREATED:
                return TransitionOutcome.IGNORED
            subscription.status = SubscriptionStatus.AUTHENTICATED
            self._save(subscription, self.clock())
        logger.info("subscription_authenticated", gateway_subscription_id=gateway_subscription_id)
        return TransitionOutcome.APPLIED

    def activated(self, gateway_subscription_id: Optional[str]) -> TransitionOutcome:
        if not gateway_subscription_id:
            return TransitionOutcome.IGNORED
        with self.storage.locked(_subscription_lock_key(gateway_subscription_id)):
            subscription = self._load(gateway_subscription_id)
            if subscription is None:
                return TransitionOutcome.IGNORED
            if subscription.subscription_start is not None:
                return TransitionOutcome.DUPLICATE

            now = self.clock()
            expiry = now + timedelta(days=RENEWAL_DAYS)
            if subscription.subscription_expiry and subscription.subscription_expiry > expiry:
                expiry = subscription.subscription_expiry
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.subscription_start = now
            subscription.subscription_expiry = expiry
            self._save(subscription, now)

            self.accounts.grant_subscription_window(
                subscription.identity_id, subscription.plan_kind.profile_kind, end=expiry, start=now
            )
        logger.info("subscription_activated", gateway_subscription_id=gateway_subscription_id, expiry=expiry.isoformat())
        return TransitionOutcome.APPLIED

    def charged(
        self,
        gateway_subscription_id: Optional[str],
        gateway_payment_id: Optional[str],
        amount_paise: Any = None,
    ) -> TransitionOutcome:
        if not gateway_subscription_id or not gateway_payment_id:
            return TransitionOutcome.IGNORED
        with self.storage.locked(_subscription_lock_key(gateway_subscription_id)):
            subscription = self._load(gateway_subscription_id)
            if subscription is None:
                return TransitionOutcome.IGNORED

            now = self.clock()
            payment = RecurringPayment(
                id=uuid4(),
                subscription_id=subscription.id,
                gateway_payment_id=gateway_payment_id,
                amount=paise_to_rupees(amount_paise),
                paid_at=now,
            )
            if not self.storage.upsert_subscription_payment(payment.model_dump()):
                return TransitionOutcome.DUPLICATE

            expiry = (subscription.subscription_expiry or now) + timedelta(days=RENEWAL_DAYS)
            subscription.subscription_expiry = expiry
            if not subscription.status.is_terminal:
                subscription.status = SubscriptionStatus.ACTIVE
            self._save(subscription, now)

            self.accounts.grant_subscription_window(
                subscription.identity_id, subscription.plan_kind.profile_kind, end=expiry
            )
        logger.info(
            "subscription_charged",
            gateway_subscription_id=gateway_subscription_id,
            gateway_payment_id=gateway_payment_id,
            expiry=expiry.isoformat(),
        )
        return TransitionOutcome.APPLIED

    def payment_failed(self, gateway_subscription_id: Optional[str]) -> TransitionOutcome:
        return self._set_status(gateway_subscription_id, SubscriptionStatus.PAYMENT_FAILED, unless_terminal=True)

    def cancelled(self, gateway_subscription_id: Optional[str]) -> TransitionOutcome:
        return self._set_status(gateway_subscription_id, SubscriptionStatus.CANCELLED)

    def completed(self, gateway_subscription_id: Optional[str]) -> TransitionOutcome:
        return self._set_status(gateway_subscription_id, SubscriptionStatus.COMPLETED)

    # Reads

    def get_subscription(self, gateway_subscription_id: str) -> RecurringSubscription:
        subscription = self._load(gateway_subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {gateway_subscription_id} not found")
        return subscription

    def list_subscriptions(self, identity_id: UUID) -> list[RecurringSubscription]:
        subscriptions = [RecurringSubscription(**data) for data in self.storage.list_subscriptions(identity_id)]
        return sorted(subscriptions, key=lambda s: s.created_at, reverse=True)

    def list_payments(self, gateway_subscription_id: str) -> list[RecurringPayment]:
        subscription = self.get_subscription(gateway_subscription_id)
        payments = [RecurringPayment(**data) for data in self.storage.list_subscription_payments(subscription.id)]
        return sorted(payments, key=lambda p: p.paid_at)
