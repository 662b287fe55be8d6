"""
Shared fixtures: a frozen clock, one in-memory store per test, a recording
fake gateway and every service wired the way the app wires them.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from accounts.models import RegisterServiceProviderRequest, RegisterShopRequest
from accounts.service import AccountService
from accounts.storage import InMemoryStorage
from billing.gateway import GatewayProvider
from billing.orders import OrderService
from billing.subscriptions import SubscriptionService
from billing.webhooks import WebhookIngest
from core.config import Settings
from core.errors import UpstreamGatewayError
from core.security import create_access_token
from helpdesk.service import HelpdeskService
from promotions.service import PromotionService
from referrals.service import ReferralService
from wallet.service import WalletService

IST = timezone(timedelta(hours=5, minutes=30))
START = datetime(2025, 3, 10, 10, 0, tzinfo=IST)


class FrozenClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeGateway:
    """Records every call; set `fail_with` to make the next calls raise."""

    key_id = "rzp_test_key"

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.fail_with: Optional[UpstreamGatewayError] = None
        self._ids = itertools.count(1)

    def _call(self, name: str, /, **kwargs) -> None:
        self.calls.append((name, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def calls_to(self, name: str) -> list[dict]:
        return [kwargs for call, kwargs in self.calls if call == name]

    def create_order(self, amount, currency, receipt, notes=None):
        self._call("create_order", amount=amount, currency=currency, receipt=receipt, notes=notes)
        return {"id": f"order_test{next(self._ids)}", "amount": amount, "currency": currency}

    def create_customer(self, name, email, contact=None, notes=None):
        self._call("create_customer", name=name, email=email, contact=contact, notes=notes)
        return {"id": f"cust_test{next(self._ids)}"}

    def create_subscription(self, plan_id, customer_id, total_count, start_at, expire_by, notes=None):
        self._call(
            "create_subscription",
            plan_id=plan_id,
            customer_id=customer_id,
            total_count=total_count,
            start_at=start_at,
            expire_by=expire_by,
            notes=notes,
        )
        return {"id": f"sub_test{next(self._ids)}", "status": "created"}

    def close(self):
        self.calls.append(("close", {}))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        RAZORPAY_KEY_ID="rzp_test_key",
        RAZORPAY_KEY_SECRET="test_key_secret",
        RAZORPAY_WEBHOOK_SECRET="whsec_test",
        RAZORPAY_PLAN_SERVICE="plan_service",
        RAZORPAY_PLAN_SHOP="plan_shop",
        JWT_SECRET="test-jwt-secret",
        ADMIN_API_KEY="test-admin-key",
        LOG_JSON=False,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def gateway_provider(settings, fake_gateway):
    return GatewayProvider(settings, factory=lambda _settings: fake_gateway)


@pytest.fixture
def accounts(storage, clock):
    return AccountService(storage=storage, clock=clock)


@pytest.fixture
def orders(accounts, gateway_provider, clock):
    return OrderService(accounts, gateway_provider, clock=clock)


@pytest.fixture
def subscriptions(accounts, gateway_provider, clock):
    return SubscriptionService(accounts, gateway_provider, clock=clock)


@pytest.fixture
def webhooks(subscriptions, settings):
    return WebhookIngest(subscriptions, settings)


@pytest.fixture
def wallet(accounts, clock):
    return WalletService(accounts, clock=clock)


@pytest.fixture
def referrals(accounts, clock):
    return ReferralService(accounts, clock=clock)


@pytest.fixture
def promotions(storage, clock):
    return PromotionService(storage, clock=clock)


@pytest.fixture
def helpdesk(storage, clock):
    return HelpdeskService(storage, clock=clock)


@pytest.fixture
def make_identity(accounts):
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        fields = {
            "name": f"Test User {n}",
            "credential_hash": "hashed",
            "phone_number": f"98765{n:05d}",
        }
        fields.update(overrides)
        return accounts.register_identity(**fields)

    return _make


@pytest.fixture
def service_request():
    def _build(**overrides):
        fields = {
            "user_name": "Ravi Electricals",
            "service_provided": "Electrician",
            "address": "12 MG Road",
            "state": "Karnataka",
            "district": "Bengaluru Urban",
            "city": "Bengaluru",
            "pincode": "560001",
        }
        fields.update(overrides)
        return RegisterServiceProviderRequest(**fields)

    return _build


@pytest.fixture
def shop_request():
    def _build(**overrides):
        fields = {
            "shop_name": "Lakshmi Stores",
            "address": "4 Temple Street",
            "state": "Tamil Nadu",
            "district": "Chennai",
            "city": "Chennai",
            "pincode": "600001",
            "whatsapp_number": "9123456780",
        }
        fields.update(overrides)
        return RegisterShopRequest(**fields)

    return _build


@pytest.fixture
def app(settings, storage, fake_gateway, clock):
    from api.index import create_app

    return create_app(settings=settings, storage=storage, gateway_factory=lambda _settings: fake_gateway, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(settings):
    def _headers(identity):
        return {"Authorization": f"Bearer {create_access_token(identity.id, settings)}"}

    return _headers
