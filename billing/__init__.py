"""
Payment Order and Recurring Subscription Ledgers

This module provides:
- One-time listing orders verified by HMAC checkout signatures
- Recurring mandates driven by signed Razorpay webhooks
- Idempotent renewals keyed by gateway payment id
- A lazily built, injectable Razorpay client
"""

from .gateway import GatewayProvider, RazorpayGateway
from .models import (
    OrderKind,
    OrderStatus,
    PaymentOrder,
    PlanKind,
    RecurringPayment,
    RecurringSubscription,
    SubscriptionStatus,
)
from .orders import OrderService
from .subscriptions import SubscriptionService
from .webhooks import WebhookIngest

__all__ = [
    "GatewayProvider",
    "RazorpayGateway",
    "OrderKind",
    "OrderStatus",
    "PaymentOrder",
    "PlanKind",
    "RecurringPayment",
    "RecurringSubscription",
    "SubscriptionStatus",
    "OrderService",
    "SubscriptionService",
    "WebhookIngest",
]
