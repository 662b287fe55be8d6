"""
Unit Tests for the Payment Order Ledger

Tests cover:
1. Order creation against the gateway
2. Signature verification and single-use orders
3. Grant routing: captured profile, current profile, staged
"""

import re
from datetime import timedelta

import pytest

from accounts.models import ProfileKind
from billing.models import OrderKind, OrderStatus
from billing.orders import BLANK_SIGNATURE_MESSAGE
from billing.signatures import sign
from core.errors import (
    ConfigurationError,
    NotFoundError,
    SignatureVerificationError,
    UpstreamGatewayError,
    ValidationError,
)

KEY_SECRET = "test_key_secret"


def _signature(gateway_order_id, payment_id, secret=KEY_SECRET):
    return sign(secret, f"{gateway_order_id}|{payment_id}")


class TestCreateOrder:
    """Tests for creating one-time listing orders."""

    def test_create_shop_order(self, orders, make_identity, fake_gateway):
        """Test that a shop order is priced at 2500 paise and stored pending."""
        identity = make_identity()

        response = orders.create_order(identity.id, "shop_subscription")

        assert re.fullmatch(r"ord_\d+_[0-9a-f]{8}", response.order_id)
        assert response.amount == 2500
        assert response.currency == "INR"
        assert response.key_id == "rzp_test_key"
        call = fake_gateway.calls_to("create_order")[0]
        assert call["receipt"] == response.order_id

        stored = orders.get_order(response.order_id)
        assert stored.status == OrderStatus.PENDING
        assert stored.kind == OrderKind.SHOP_SUBSCRIPTION
        assert stored.gateway_order_id == response.gateway_order_id
        assert stored.profile_id is None

    def test_service_order_captures_current_profile(self, orders, accounts, make_identity, service_request):
        """Test that the linked service profile is captured at creation."""
        identity = make_identity()
        profile = accounts.register_service_provider(identity.id, service_request())

        response = orders.create_order(identity.id, "user_subscription")

        assert response.amount == 1000
        assert orders.get_order(response.order_id).profile_id == profile.id

    def test_unknown_kind_rejected(self, orders, make_identity, fake_gateway):
        """Test that an unrecognised kind never reaches the gateway."""
        identity = make_identity()
        with pytest.raises(ValidationError):
            orders.create_order(identity.id, "gold_subscription")
        assert fake_gateway.calls == []

    def test_missing_credentials(self, orders, make_identity, settings):
        """Test that unset gateway keys raise ConfigurationError."""
        settings.RAZORPAY_KEY_SECRET = ""
        identity = make_identity()
        with pytest.raises(ConfigurationError):
            orders.create_order(identity.id, "shop_subscription")

    def test_gateway_failure_persists_nothing(self, orders, make_identity, fake_gateway):
        """Test that a failed gateway call leaves no local order."""
        identity = make_identity()
        fake_gateway.fail_with = UpstreamGatewayError("Razorpay is down", upstream_status=503)

        with pytest.raises(UpstreamGatewayError):
            orders.create_order(identity.id, "shop_subscription")
        assert orders.list_orders(identity.id) == []


class TestVerifyOrder:
    """Tests for checkout signature verification."""

    def _create(self, orders, identity, kind="shop_subscription"):
        response = orders.create_order(identity.id, kind)
        return response.order_id, response.gateway_order_id

    def test_valid_signature_completes_and_stages(self, orders, accounts, make_identity, clock):
        """Test that a verified order without a profile stages the grant."""
        identity = make_identity()
        order_id, gateway_order_id = self._create(orders, identity)

        result = orders.verify_order(
            gateway_order_id, "pay_1", _signature(gateway_order_id, "pay_1"), order_id, "shop_subscription"
        )

        assert result.staged is True
        assert result.subscription_end_date == clock() + timedelta(days=30)
        stored = orders.get_order(order_id)
        assert stored.status == OrderStatus.COMPLETED
        assert stored.gateway_payment_id == "pay_1"
        assert accounts.get_identity(identity.id).pending_shop_subscription_end == result.subscription_end_date

    def test_valid_signature_writes_profile_window(self, orders, accounts, make_identity, service_request, clock):
        """Test that a captured profile gets start and end written."""
        identity = make_identity()
        profile = accounts.register_service_provider(identity.id, service_request())
        order_id, gateway_order_id = self._create(orders, identity, "user_subscription")

        orders.verify_order(
            gateway_order_id, "pay_2", _signature(gateway_order_id, "pay_2"), order_id, "user_subscription"
        )

        stored = accounts.get_profile_model(ProfileKind.SERVICE, profile.id)
        assert stored.subscription_start_date == clock()
        assert stored.subscription_end_date == clock() + timedelta(days=30)

    def test_profile_registered_after_order_receives_grant(self, orders, accounts, make_identity, shop_request, clock):
        """Test that the identity's current profile is used when none was captured."""
        identity = make_identity()
        order_id, gateway_order_id = self._create(orders, identity)
        shop = accounts.register_shop(identity.id, shop_request())

        result = orders.verify_order(
            gateway_order_id, "pay_3", _signature(gateway_order_id, "pay_3"), order_id, "shop_subscription"
        )

        assert result.staged is False
        assert accounts.get_profile_model(ProfileKind.SHOP, shop.id).subscription_end_date == result.subscription_end_date

    def test_second_verify_is_not_found(self, orders, accounts, make_identity, clock):
        """Test that an order grants exactly once."""
        identity = make_identity()
        order_id, gateway_order_id = self._create(orders, identity)
        signature = _signature(gateway_order_id, "pay_4")
        orders.verify_order(gateway_order_id, "pay_4", signature, order_id, "shop_subscription")
        staged = accounts.get_identity(identity.id).pending_shop_subscription_end
        clock.advance(days=1)

        with pytest.raises(NotFoundError, match="Order not found or already processed"):
            orders.verify_order(gateway_order_id, "pay_4", signature, order_id, "shop_subscription")

        assert accounts.get_identity(identity.id).pending_shop_subscription_end == staged

    def test_bad_signature_fails_order(self, orders, accounts, make_identity):
        """Test that a signature from another secret fails the order."""
        identity = make_identity()
        order_id, gateway_order_id = self._create(orders, identity)

        with pytest.raises(SignatureVerificationError):
            orders.verify_order(
                gateway_order_id, "pay_5", _signature(gateway_order_id, "pay_5", "other_secret"),
                order_id, "shop_subscription",
            )

        assert orders.get_order(order_id).status == OrderStatus.FAILED
        assert accounts.get_identity(identity.id).pending_shop_subscription_end is None

    def test_signature_for_another_gateway_order_rejected(self, orders, make_identity):
        """Test that a valid pair for a different gateway order does not complete this one."""
        identity = make_identity()
        order_id, _ = self._create(orders, identity)

        with pytest.raises(SignatureVerificationError):
            orders.verify_order(
                "order_other", "pay_6", _signature("order_other", "pay_6"), order_id, "shop_subscription"
            )

    @pytest.mark.parametrize("signature", [None, "", "   "])
    def test_blank_signature_message(self, orders, signature):
        """Test that a blank signature gets the SDK hint."""
        with pytest.raises(ValidationError) as excinfo:
            orders.verify_order("order_x", "pay_x", signature, "ord_1", "shop_subscription")
        assert excinfo.value.message == BLANK_SIGNATURE_MESSAGE

    def test_missing_fields(self, orders):
        """Test that missing ids are rejected before any lookup."""
        with pytest.raises(ValidationError, match="are required"):
            orders.verify_order(None, "pay_x", "sig", "ord_1", "shop_subscription")

    def test_kind_must_match_order(self, orders, make_identity):
        """Test that the lookup is keyed by kind as well as id."""
        identity = make_identity()
        order_id, gateway_order_id = self._create(orders, identity)

        with pytest.raises(NotFoundError):
            orders.verify_order(
                gateway_order_id, "pay_7", _signature(gateway_order_id, "pay_7"), order_id, "user_subscription"
            )

    def test_refunded_order_is_not_verifiable(self, orders, storage, accounts, make_identity):
        """Test that only pending orders can complete."""
        identity = make_identity()
        order_id, gateway_order_id = self._create(orders, identity)
        stored = storage.get_payment_order(order_id)
        stored["status"] = OrderStatus.REFUNDED
        storage.save_payment_order(stored)

        with pytest.raises(NotFoundError):
            orders.verify_order(
                gateway_order_id, "pay_8", _signature(gateway_order_id, "pay_8"), order_id, "shop_subscription"
            )

        assert orders.get_order(order_id).status == OrderStatus.REFUNDED
        assert accounts.get_identity(identity.id).pending_shop_subscription_end is None
