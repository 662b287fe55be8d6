from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from accounts.deps import get_current_identity
from accounts.models import Identity

from .models import (
    CreateOrderRequest,
    CreateOrderResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    VerifyOrderRequest,
    VerifyOrderResponse,
    WebhookOutcome,
)
from .orders import OrderService
from .subscriptions import SubscriptionService
from .webhooks import WebhookIngest

router = APIRouter(prefix="/api")


def get_order_service(request: Request) -> OrderService:
    return request.app.state.orders


def get_subscription_service(request: Request) -> SubscriptionService:
    return request.app.state.subscriptions


def get_webhook_ingest(request: Request) -> WebhookIngest:
    return request.app.state.webhooks


@router.post("/payments/create-order", response_model=CreateOrderResponse, tags=["Payments"])
def create_order(
    request: CreateOrderRequest,
    identity: Identity = Depends(get_current_identity),
    orders: OrderService = Depends(get_order_service),
) -> CreateOrderResponse:
    return orders.create_order(identity.id, request.type)


@router.post("/payments/verify", response_model=VerifyOrderResponse, tags=["Payments"])
def verify_payment(
    request: VerifyOrderRequest,
    orders: OrderService = Depends(get_order_service),
) -> VerifyOrderResponse:
    return orders.verify_order(
        gateway_order_id=request.razorpay_order_id,
        gateway_payment_id=request.razorpay_payment_id,
        signature=request.razorpay_signature,
        local_order_id=request.order_id,
        kind=request.type,
    )


@router.post("/subscription/create", response_model=CreateSubscriptionResponse, tags=["Subscriptions"])
def create_subscription(
    request: CreateSubscriptionRequest,
    identity: Identity = Depends(get_current_identity),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> CreateSubscriptionResponse:
    return subscriptions.create_subscription(identity.id, request.plan_type, request.user_id)


@router.post("/webhook/razorpay", response_model=WebhookOutcome, tags=["Webhooks"])
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    ingest: WebhookIngest = Depends(get_webhook_ingest),
) -> WebhookOutcome:
    raw_body = await request.body()
    # handle() takes store locks; keep it off the event loop
    return await run_in_threadpool(ingest.handle, raw_body, x_razorpay_signature)
