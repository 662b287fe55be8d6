import secrets
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from accounts.models import StagedGrant
from accounts.service import AccountService
from core.clock import Clock, local_now
from core.errors import NotFoundError, SignatureVerificationError, UpstreamGatewayError, ValidationError

from .gateway import GatewayProvider
from .models import (
    CreateOrderResponse,
    OrderKind,
    OrderStatus,
    PaymentOrder,
    VerifyOrderResponse,
)
from .signatures import verify_payment_signature

logger = structlog.get_logger(__name__)

CURRENCY = "INR"
SUBSCRIPTION_DAYS = 30
PRICES_PAISE = {
    OrderKind.USER_SUBSCRIPTION: 1000,
    OrderKind.SHOP_SUBSCRIPTION: 2500,
}

BLANK_SIGNATURE_MESSAGE = (
    "razorpay_signature is required and cannot be empty. Check that the Razorpay SDK success "
    "callback provides it (some SDKs use camelCase: razorpaySignature)."
)


def parse_order_kind(value: Any) -> OrderKind:
    try:
        return OrderKind(str(value).strip())
    except ValueError:
        raise ValidationError("type must be user_subscription or shop_subscription")


def generate_order_id(now: datetime) -> str:
    return f"ord_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


def _order_lock_key(order_id: str) -> str:
    return f"order:{order_id}"


class OrderService:
    def __init__(self, accounts: AccountService, gateway: GatewayProvider, clock: Clock = local_now):
        self.accounts = accounts
        self.storage = accounts.storage
        self.gateway = gateway
        self.clock = clock

    def create_order(self, identity_id: UUID, kind: Any) -> CreateOrderResponse:
        order_kind = parse_order_kind(kind)
        gateway = self.gateway.get()
        identity = self.accounts.get_identity(identity_id)

        now = self.clock()
        order_id = generate_order_id(now)
        amount = PRICES_PAISE[order_kind]
        response = gateway.create_order(
            amount=amount,
            currency=CURRENCY,
            receipt=order_id,
            notes={"type": order_kind.value, "orderId": order_id},
        )
        gateway_order_id = response.get("id")
        if not gateway_order_id:
            raise UpstreamGatewayError("Razorpay did not return an order id.")

        order = PaymentOrder(
            id=uuid4(),
            order_id=order_id,
            gateway_order_id=gateway_order_id,
            identity_id=identity.id,
            kind=order_kind,
            amount=amount,
            currency=CURRENCY,
            profile_id=identity.profile_id_for(order_kind.profile_kind),
            created_at=now,
            updated_at=now,
        )
        self.storage.insert_payment_order(order.model_dump())
        logger.info("order_created", order_id=order_id, identity_id=str(identity.id), kind=order_kind.value)

        return CreateOrderResponse(
            order_id=order_id,
            gateway_order_id=gateway_order_id,
            amount=amount,
            currency=CURRENCY,
            key_id=self.gateway.key_id,
        )

    def verify_order(
        self,
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        signature: Optional[str],
        local_order_id: Optional[str],
        kind: Optional[str],
    ) -> VerifyOrderResponse:
        if signature is None or not str(signature).strip():
            raise ValidationError(BLANK_SIGNATURE_MESSAGE)
        if not gateway_order_id or not gateway_payment_id or not kind or not local_order_id:
            raise ValidationError("razorpay_order_id, razorpay_payment_id, type and orderId are required")
        order_kind = parse_order_kind(kind)
        key_secret = self.gateway.key_secret

        with self.storage.locked(_order_lock_key(local_order_id)):
            data = self.storage.get_payment_order(local_order_id)
            if not data or data["kind"] != order_kind or data["status"] != OrderStatus.PENDING:
                raise NotFoundError("Order not found or already processed")
            order = PaymentOrder(**data)

            now = self.clock()
            signature_ok = gateway_order_id == order.gateway_order_id and verify_payment_signature(
                key_secret, order.gateway_order_id, gateway_payment_id, str(signature)
            )
            if not signature_ok:
                order.status = OrderStatus.FAILED
                order.updated_at = now
                self.storage.save_payment_order(order.model_dump())
                logger.warning("order_signature_mismatch", order_id=order.order_id)
                raise SignatureVerificationError("Payment verification failed")

            order.status = OrderStatus.COMPLETED
            order.gateway_payment_id = gateway_payment_id
            order.updated_at = now
            self.storage.save_payment_order(order.model_dump())

            end = now + timedelta(days=SUBSCRIPTION_DAYS)
            target = self.accounts.grant_subscription_window(
                order.identity_id,
                order_kind.profile_kind,
                end=end,
                start=now,
                profile_id=order.profile_id,
            )

        logger.info("order_verified", order_id=order.order_id, identity_id=str(order.identity_id))
        return VerifyOrderResponse(
            message="Payment verified. Subscription activated.",
            kind=order_kind,
            subscription_end_date=end,
            staged=isinstance(target, StagedGrant),
        )

    def get_order(self, local_order_id: str) -> PaymentOrder:
        data = self.storage.get_payment_order(local_order_id)
        if not data:
            raise NotFoundError(f"Order {local_order_id} not found")
        return PaymentOrder(**data)

    def list_orders(self, identity_id: UUID) -> list[PaymentOrder]:
        orders = [PaymentOrder(**data) for data in self.storage.list_payment_orders(identity_id)]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)
