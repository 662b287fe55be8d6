"""
Unit Tests for Webhook Ingest

Tests cover:
1. Signature verification over the exact raw body
2. Rejection order: configuration, body, signature, JSON
3. Event dispatch and acknowledgement of unknown events
4. The HTTP endpoint
"""

import asyncio
import hashlib
import hmac
import json
import threading

import httpx
import pytest

from billing.models import SubscriptionStatus
from billing.signatures import sign, verify_webhook_signature
from billing.webhooks import router
from core.errors import ConfigurationError, SignatureVerificationError, ValidationError

WEBHOOK_SECRET = "whsec_test"


def _body(event, subscription_id=None, payment=None, wrap_entity=True):
    payload = {}
    if subscription_id is not None:
        entity = {"id": subscription_id}
        payload["subscription"] = {"entity": entity} if wrap_entity else entity
    if payment is not None:
        payload["payment"] = {"entity": payment} if wrap_entity else payment
    return json.dumps({"event": event, "payload": payload}).encode("utf-8")


def _create(subscriptions, make_identity):
    identity = make_identity()
    return subscriptions.create_subscription(identity.id, "SHOP").subscription_id


class TestSignature:
    """Tests for HMAC verification."""

    def test_exact_hmac_accepted(self):
        """Test that the hex HMAC-SHA256 of the raw body verifies."""
        raw = b'{"event":"subscription.activated"}'
        assert verify_webhook_signature(WEBHOOK_SECRET, raw, sign(WEBHOOK_SECRET, raw))

    def test_matches_independent_hmac(self):
        """Test the signer against HMAC-SHA256 computed directly."""
        raw = b'{"event":"subscription.charged","payload":{}}'
        expected = hmac.new(b"whsec_test", raw, hashlib.sha256).hexdigest()

        assert sign(WEBHOOK_SECRET, raw) == expected
        assert verify_webhook_signature(WEBHOOK_SECRET, raw, expected)

    def test_published_vector(self):
        """Test RFC 4231 case 2 for HMAC-SHA256."""
        assert sign("Jefe", "what do ya want for nothing?") == (
            "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"
        )

    def test_other_secret_rejected(self):
        """Test that a signature from another secret never verifies."""
        raw = b'{"event":"subscription.activated"}'
        assert not verify_webhook_signature(WEBHOOK_SECRET, raw, sign("whsec_other", raw))

    def test_reserialised_body_rejected(self):
        """Test that whitespace changes to the body break the signature."""
        raw = b'{"event": "subscription.activated"}'
        compact = json.dumps(json.loads(raw), separators=(",", ":")).encode()
        assert not verify_webhook_signature(WEBHOOK_SECRET, compact, sign(WEBHOOK_SECRET, raw))


class TestIngest:
    """Tests for WebhookIngest.handle."""

    def test_registered_events(self):
        """Test that every subscription event has a handler."""
        assert router.event_types == [
            "payment.failed",
            "subscription.activated",
            "subscription.authenticated",
            "subscription.cancelled",
            "subscription.charged",
            "subscription.completed",
        ]

    def test_missing_secret(self, webhooks, settings):
        """Test that an unset webhook secret is a configuration error."""
        settings.RAZORPAY_WEBHOOK_SECRET = ""
        with pytest.raises(ConfigurationError):
            webhooks.handle(b"{}", "sig")

    def test_empty_body(self, webhooks):
        """Test that an empty body is rejected."""
        with pytest.raises(ValidationError):
            webhooks.handle(b"", "sig")

    def test_bad_signature_rejected_before_parsing(self, webhooks):
        """Test that malformed JSON with a bad signature is a signature error."""
        with pytest.raises(SignatureVerificationError):
            webhooks.handle(b"not json", sign("whsec_other", b"not json"))

    def test_missing_signature(self, webhooks):
        """Test that an absent header is rejected."""
        with pytest.raises(SignatureVerificationError):
            webhooks.handle(b"{}", None)

    def test_malformed_json_after_valid_signature(self, webhooks):
        """Test that a correctly signed non-JSON body is a validation error."""
        raw = b"not json"
        with pytest.raises(ValidationError, match="Invalid JSON"):
            webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))

    def test_unknown_event_acknowledged(self, webhooks):
        """Test that unhandled events are ignored, not errors."""
        raw = _body("order.paid")
        outcome = webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))
        assert outcome.received is True
        assert outcome.handled is False
        assert outcome.detail == "ignored"

    def test_missing_event_acknowledged(self, webhooks):
        """Test that a payload without an event name is acknowledged."""
        raw = b'{"payload": {}}'
        outcome = webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))
        assert outcome.received is True
        assert outcome.event is None

    def test_activated_dispatch(self, webhooks, subscriptions, make_identity):
        """Test that subscription.activated reaches the ledger."""
        sub_id = _create(subscriptions, make_identity)
        raw = _body("subscription.activated", sub_id)

        outcome = webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))

        assert outcome.handled is True
        assert subscriptions.get_subscription(sub_id).status == SubscriptionStatus.ACTIVE

    def test_charged_unwrapped_entities(self, webhooks, subscriptions, make_identity):
        """Test that entities without an `entity` wrapper are read too."""
        sub_id = _create(subscriptions, make_identity)
        raw = _body("subscription.charged", sub_id, {"id": "pay_1", "amount": 2500}, wrap_entity=False)

        webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))

        assert len(subscriptions.list_payments(sub_id)) == 1

    def test_duplicate_charge_delivery(self, webhooks, subscriptions, make_identity):
        """Test that redelivery of the same charge records one payment."""
        sub_id = _create(subscriptions, make_identity)
        raw = _body("subscription.charged", sub_id, {"id": "pay_1", "amount": 2500})

        first = webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))
        second = webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))

        assert first.handled is True
        assert second.detail == "duplicate"
        assert len(subscriptions.list_payments(sub_id)) == 1

    def test_payment_failed_uses_payment_entity(self, webhooks, subscriptions, make_identity):
        """Test that payment.failed reads the mandate id from the payment."""
        sub_id = _create(subscriptions, make_identity)
        raw = _body("payment.failed", payment={"id": "pay_x", "subscription_id": sub_id})

        webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))

        assert subscriptions.get_subscription(sub_id).status == SubscriptionStatus.PAYMENT_FAILED

    def test_untracked_subscription_ignored(self, webhooks):
        """Test that events for unknown mandates are acknowledged."""
        raw = _body("subscription.cancelled", "sub_unknown")
        outcome = webhooks.handle(raw, sign(WEBHOOK_SECRET, raw))
        assert outcome.handled is False


class TestWebhookEndpoint:
    """Tests for POST /api/webhook/razorpay."""

    def test_signed_delivery_accepted(self, client, subscriptions, storage, make_identity):
        """Test the endpoint against the raw request body."""
        sub_id = _create(subscriptions, make_identity)
        raw = _body("subscription.authenticated", sub_id)

        response = client.post(
            "/api/webhook/razorpay",
            content=raw,
            headers={"X-Razorpay-Signature": sign(WEBHOOK_SECRET, raw), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["received"] is True
        assert storage.get_subscription(sub_id)["status"] == SubscriptionStatus.AUTHENTICATED

    def test_invalid_signature_is_400(self, client):
        """Test that a forged delivery gets a 400 error body."""
        raw = _body("subscription.activated", "sub_1")

        response = client.post("/api/webhook/razorpay", content=raw, headers={"X-Razorpay-Signature": "forged"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"] == "signature_verification_failed"

    def test_delivery_waiting_on_a_lock_leaves_loop_free(self, app, subscriptions, storage, make_identity):
        """Test that other requests are served while a delivery waits for its subscription lock."""
        sub_id = _create(subscriptions, make_identity)
        raw = _body("subscription.activated", sub_id)
        headers = {"X-Razorpay-Signature": sign(WEBHOOK_SECRET, raw), "Content-Type": "application/json"}
        held = threading.Event()
        release = threading.Event()

        def hold_lock():
            with storage.locked(f"subscription:{sub_id}"):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        assert held.wait(5)

        async def deliver_and_check_health():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
                delivery = asyncio.ensure_future(
                    http.post("/api/webhook/razorpay", content=raw, headers=headers)
                )
                await asyncio.sleep(0.05)
                health = await http.get("/health")
                waiting = not delivery.done()
                release.set()
                return health, waiting, await delivery

        try:
            health, waiting, response = asyncio.run(deliver_and_check_health())
        finally:
            release.set()
            holder.join(5)

        assert health.status_code == 200
        assert waiting is True
        assert response.status_code == 200
        assert storage.get_subscription(sub_id)["status"] == SubscriptionStatus.ACTIVE
