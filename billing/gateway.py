import threading
from typing import Any, Callable, Optional

import httpx
import structlog

from core.config import Settings
from core.errors import ConfigurationError, UpstreamGatewayError

logger = structlog.get_logger(__name__)


class RazorpayGateway:
    """Thin Razorpay REST client.

    Every call is bounded by `timeout`; transport failures and HTTP >= 400
    answers surface as `UpstreamGatewayError` carrying Razorpay's own
    description when the body has one.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key_id = key_id
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, json_payload: Optional[dict] = None) -> dict[str, Any]:
        try:
            response = self._client.request(method.upper(), f"/{path.lstrip('/')}", json=json_payload)
        except httpx.HTTPError as exc:
            logger.error("gateway_unreachable", method=method, path=path, error=str(exc))
            raise UpstreamGatewayError(f"Failed to contact Razorpay: {exc}")

        if response.status_code >= 400:
            message = _error_description(response) or "Unable to process Razorpay request right now."
            logger.error("gateway_error", method=method, path=path, status=response.status_code, message=message)
            raise UpstreamGatewayError(message, upstream_status=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamGatewayError("Invalid response received from Razorpay.", upstream_status=response.status_code)
        if not isinstance(payload, dict):
            raise UpstreamGatewayError("Unexpected response format from Razorpay.", upstream_status=response.status_code)
        return payload

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[dict] = None) -> dict[str, Any]:
        return self._request("POST", "orders", {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        })

    def create_customer(
        self,
        name: str,
        email: str,
        contact: Optional[str] = None,
        notes: Optional[dict] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": name, "email": email, "fail_existing": 0, "notes": notes or {}}
        if contact:
            payload["contact"] = contact
        return self._request("POST", "customers", payload)

    def create_subscription(
        self,
        plan_id: str,
        customer_id: str,
        total_count: int,
        start_at: int,
        expire_by: int,
        notes: Optional[dict] = None,
    ) -> dict[str, Any]:
        return self._request("POST", "subscriptions", {
            "plan_id": plan_id,
            "customer_id": customer_id,
            "total_count": total_count,
            "customer_notify": 1,
            "start_at": start_at,
            "expire_by": expire_by,
            "notes": notes or {},
        })


def _error_description(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("description") or error.get("reason")
    return None


GatewayFactory = Callable[[Settings], RazorpayGateway]


def build_gateway(settings: Settings) -> RazorpayGateway:
    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID.strip(),
        key_secret=settings.RAZORPAY_KEY_SECRET.strip(),
        base_url=settings.RAZORPAY_API_BASE,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )


class GatewayProvider:
    """Builds the gateway client on first use and hands out the same one after."""

    def __init__(self, settings: Settings, factory: GatewayFactory = build_gateway):
        self.settings = settings
        self._factory = factory
        self._gateway: Optional[RazorpayGateway] = None
        self._lock = threading.Lock()

    @property
    def key_id(self) -> str:
        return self.settings.RAZORPAY_KEY_ID.strip()

    @property
    def key_secret(self) -> str:
        if not self.settings.gateway_configured:
            raise ConfigurationError("Payment gateway is not configured")
        return self.settings.RAZORPAY_KEY_SECRET.strip()

    def get(self) -> RazorpayGateway:
        if not self.settings.gateway_configured:
            raise ConfigurationError("Payment gateway is not configured")
        with self._lock:
            if self._gateway is None:
                self._gateway = self._factory(self.settings)
            return self._gateway

    def close(self) -> None:
        with self._lock:
            gateway, self._gateway = self._gateway, None
        if gateway is not None:
            gateway.close()
