"""
Payment gateway adapter contract and the mock gateway used outside production.

The workflows only depend on PaymentGateway; any real processor plugs in by
implementing initiate/verify/refund. Callback signatures follow the common
HMAC-SHA256 scheme over "order_id|payment_id".
"""

import hashlib
import hmac
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache

from app.core.config import get_settings


class GatewayError(Exception):
    """The gateway could not be reached or refused the operation."""


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    status: str  # processed, failed

    @property
    def succeeded(self) -> bool:
        return self.status == "processed"


class PaymentGateway(ABC):
    """Contract consumed by the payment orchestrator and refund workflow."""

    @abstractmethod
    async def initiate(self, amount: int, currency: str, reference_id: str) -> GatewayOrder:
        """Create a gateway order the client will check out against."""

    @abstractmethod
    async def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check that a checkout callback is authentic and the payment captured."""

    @abstractmethod
    async def refund(self, payment_id: str, amount: int) -> GatewayRefund:
        """Return `amount` of a captured payment to the payer."""


def sign_payment(secret: str, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class MockGateway(PaymentGateway):
    """
    In-process gateway for development and demos.

    Orders are random ids, verification is a real HMAC check against the
    configured secret, and refunds always succeed.
    """

    def __init__(self, secret: str):
        self.secret = secret

    async def initiate(self, amount: int, currency: str, reference_id: str) -> GatewayOrder:
        return GatewayOrder(order_id=f"order_{uuid.uuid4().hex[:20]}")

    async def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = sign_payment(self.secret, order_id, payment_id)
        return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))

    async def refund(self, payment_id: str, amount: int) -> GatewayRefund:
        return GatewayRefund(refund_id=f"rfnd_{uuid.uuid4().hex[:20]}", status="processed")


@lru_cache()
def get_gateway() -> PaymentGateway:
    """Gateway factory, selected by the PAYMENT_GATEWAY setting."""
    settings = get_settings()
    gateways = {
        "mock": MockGateway,
    }
    gateway_class = gateways.get(settings.PAYMENT_GATEWAY.lower())
    if gateway_class is None:
        raise ValueError(f"Unknown payment gateway: {settings.PAYMENT_GATEWAY}")
    return gateway_class(settings.GATEWAY_KEY_SECRET)
