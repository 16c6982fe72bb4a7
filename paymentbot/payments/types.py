# paymentbot/payments/types.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Optional, Dict, Any


class ProviderError(Exception):
    """Raised by provider adapters for any failed remote call (network, auth, 4xx/5xx)."""

    def __init__(self, message: str, *, provider: str = "stripe", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


@dataclass(frozen=True)
class PaymentLink:
    url: str
    id: str
    provider: str


class BillingProvider(Protocol):
    # --- webhooks ---
    def verify_signature(self, payload: bytes, sig_header: str) -> Dict[str, Any]: ...

    # --- catalog ---
    def create_product(
        self, *, name: str, description: Optional[str], idempotency_key: Optional[str] = None
    ) -> str: ...

    def create_price(
        self, *, product_id: str, unit_amount: int, currency: str,
        recurring: Optional[Dict[str, Any]], metadata: Optional[Dict[str, str]],
        idempotency_key: Optional[str] = None,
    ) -> str: ...

    # --- links ---
    def create_payment_link(
        self, *, price_id: str, one_time: bool,
        metadata: Optional[Dict[str, str]],
        subscription_metadata: Optional[Dict[str, str]],
        idempotency_key: Optional[str] = None,
    ) -> PaymentLink: ...

    # --- subscriptions ---
    def schedule_subscription_cancellation(self, *, subscription_id: str, cancel_at: int) -> Dict[str, Any]: ...


class LinkGenerator(Protocol):
    """One implementation per provider tag; see paymentbot.engine.registry."""

    def create_link(self, request: Any, idempotency_key: Optional[str] = None) -> PaymentLink: ...
