import hashlib
import hmac
from typing import Optional, Union


def sign(secret: str, message: Union[str, bytes]) -> str:
    """Hex HMAC-SHA256 of `message` keyed by `secret`."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    key_secret: str, gateway_order_id: str, gateway_payment_id: str, signature: Optional[str]
) -> bool:
    if not signature:
        return False
    expected = sign(key_secret, f"{gateway_order_id}|{gateway_payment_id}")
    return hmac.compare_digest(expected, signature.strip())


def verify_webhook_signature(webhook_secret: str, raw_body: bytes, signature: Optional[str]) -> bool:
    # The digest covers the exact bytes received, never a re-serialised payload.
    if not signature:
        return False
    expected = sign(webhook_secret, raw_body)
    return hmac.compare_digest(expected, signature.strip())
