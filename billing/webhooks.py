import json
from typing import Any, Callable, Optional

import structlog

from core.config import Settings
from core.errors import ConfigurationError, SignatureVerificationError, ValidationError

from .models import TransitionOutcome, WebhookOutcome
from .signatures import verify_webhook_signature
from .subscriptions import SubscriptionService

logger = structlog.get_logger(__name__)

EventHandler = Callable[[SubscriptionService, dict], TransitionOutcome]


def entity(payload: dict, name: str) -> dict:
    """Return `payload.<name>.entity`, falling back to `payload.<name>`."""
    container = payload.get("payload")
    if not isinstance(container, dict):
        return {}
    section = container.get(name)
    if not isinstance(section, dict):
        return {}
    inner = section.get("entity")
    return inner if isinstance(inner, dict) else section


class WebhookRouter:
    """Maps Razorpay event names to handlers."""

    def __init__(self):
        self._handlers: dict[str, EventHandler] = {}

    def register(self, event_type: str):
        def decorator(handler: EventHandler) -> EventHandler:
            self._handlers[event_type] = handler
            return handler
        return decorator

    def get(self, event_type: str) -> Optional[EventHandler]:
        return self._handlers.get(event_type)

    @property
    def event_types(self) -> list[str]:
        return sorted(self._handlers)


router = WebhookRouter()


@router.register("subscription.authenticated")
def _on_authenticated(subscriptions: SubscriptionService, payload: dict) -> TransitionOutcome:
    return subscriptions.authenticated(entity(payload, "subscription").get("id"))


@router.register("subscription.activated")
def _on_activated(subscriptions: SubscriptionService, payload: dict) -> TransitionOutcome:
    return subscriptions.activated(entity(payload, "subscription").get("id"))


@router.register("subscription.charged")
def _on_charged(subscriptions: SubscriptionService, payload: dict) -> TransitionOutcome:
    payment = entity(payload, "payment")
    return subscriptions.charged(
        entity(payload, "subscription").get("id"),
        payment.get("id"),
        payment.get("amount"),
    )


@router.register("payment.failed")
def _on_payment_failed(subscriptions: SubscriptionService, payload: dict) -> TransitionOutcome:
    # Razorpay puts the mandate id on the payment entity for this event.
    return subscriptions.payment_failed(entity(payload, "payment").get("subscription_id"))


@router.register("subscription.cancelled")
def _on_cancelled(subscriptions: SubscriptionService, payload: dict) -> TransitionOutcome:
    return subscriptions.cancelled(entity(payload, "subscription").get("id"))


@router.register("subscription.completed")
def _on_completed(subscriptions: SubscriptionService, payload: dict) -> TransitionOutcome:
    return subscriptions.completed(entity(payload, "subscription").get("id"))


class WebhookIngest:
    def __init__(self, subscriptions: SubscriptionService, settings: Settings, event_router: WebhookRouter = router):
        self.subscriptions = subscriptions
        self.settings = settings
        self.router = event_router

    def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        secret = self.settings.RAZORPAY_WEBHOOK_SECRET.strip()
        if not secret:
            raise ConfigurationError("RAZORPAY_WEBHOOK_SECRET is not configured")
        if not raw_body:
            raise ValidationError("Missing body")
        if not verify_webhook_signature(secret, raw_body, signature):
            logger.warning("webhook_signature_rejected", has_signature=bool(signature))
            raise SignatureVerificationError("Invalid webhook signature")

        try:
            payload: Any = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON body")

        event = payload.get("event")
        if not event or not isinstance(event, str):
            logger.info("webhook_ignored", reason="missing_event")
            return WebhookOutcome(detail="missing event")

        handler = self.router.get(event)
        if handler is None:
            logger.info("webhook_ignored", webhook_event=event, reason="unhandled_event")
            return WebhookOutcome(event=event, detail=TransitionOutcome.IGNORED.value)

        outcome = handler(self.subscriptions, payload)
        if outcome != TransitionOutcome.APPLIED:
            logger.info("webhook_ignored", webhook_event=event, reason=outcome.value)
        return WebhookOutcome(
            event=event,
            handled=outcome == TransitionOutcome.APPLIED,
            detail=outcome.value,
        )
