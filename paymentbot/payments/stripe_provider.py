from __future__ import annotations
from typing import Optional, Dict, Any
import stripe
import structlog
from fastapi import HTTPException

from paymentbot.payments.types import PaymentLink, ProviderError

logger = structlog.get_logger(__name__)


def _wrap(stage: str, e: "stripe.StripeError") -> ProviderError:
    return ProviderError(
        f"Stripe {stage} failed: {getattr(e, 'user_message', None) or str(e)}",
        provider="stripe",
        status_code=getattr(e, "http_status", None),
    )


class StripePaymentProvider:
    """
    Thin adapter over the Stripe SDK. The API key travels with every request
    instead of living in `stripe.api_key`, so several providers (or tests) can
    coexist in one process.
    """

    def __init__(self, api_key: str, webhook_secret: str, max_network_retries: int = 1):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        # process-wide in the SDK; the value is the same for every provider we build
        stripe.max_network_retries = max_network_retries

    # --- webhooks/signature ---
    def verify_signature(self, payload: bytes, sig_header: str):
        try:
            return stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError):
            raise HTTPException(status_code=400, detail="Invalid Stripe signature")

    # --- catalog ---
    def create_product(
        self, *, name: str, description: Optional[str] = None, idempotency_key: Optional[str] = None
    ) -> str:
        params: Dict[str, Any] = {"name": name}
        if description:
            params["description"] = description
        try:
            product = stripe.Product.create(api_key=self.api_key, idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            raise _wrap("product creation", e) from e
        return product.id

    def create_price(
        self,
        *,
        product_id: str,
        unit_amount: int,
        currency: str,
        recurring: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "product": product_id,
            "unit_amount": unit_amount,
            "currency": currency.lower(),
        }
        if recurring:
            params["recurring"] = recurring
        if metadata:
            params["metadata"] = metadata
        try:
            price = stripe.Price.create(api_key=self.api_key, idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            raise _wrap("price creation", e) from e
        return price.id

    # --- links ---
    def create_payment_link(
        self,
        *,
        price_id: str,
        one_time: bool,
        metadata: Optional[Dict[str, str]] = None,
        subscription_metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> PaymentLink:
        params: Dict[str, Any] = {
            "line_items": [{"price": price_id, "quantity": 1}],
        }
        if metadata:
            params["metadata"] = metadata
        if one_time:
            # keep the card on file for follow-up charges
            params["customer_creation"] = "always"
            params["payment_intent_data"] = {"setup_future_usage": "off_session"}
        else:
            # copied by Stripe onto every subscription created from this link
            params["subscription_data"] = {"metadata": subscription_metadata or {}}
        try:
            link = stripe.PaymentLink.create(api_key=self.api_key, idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            raise _wrap("payment link creation", e) from e
        return PaymentLink(url=link.url, id=link.id, provider="stripe")

    # --- subscriptions ---
    def schedule_subscription_cancellation(self, *, subscription_id: str, cancel_at: int) -> Dict[str, Any]:
        try:
            updated = stripe.Subscription.modify(
                subscription_id,
                api_key=self.api_key,
                cancel_at=int(cancel_at),
                cancel_at_period_end=True,
            )
        except stripe.StripeError as e:
            raise _wrap("subscription update", e) from e
        logger.info(
            "stripe_subscription_cancel_at_set",
            subscription_id=updated.id,
            status=updated.status,
            cancel_at=getattr(updated, "cancel_at", None),
            cancel_at_period_end=bool(getattr(updated, "cancel_at_period_end", False)),
        )
        return {
            "id": updated.id,
            "status": updated.status,
            "cancel_at": int(updated.cancel_at) if getattr(updated, "cancel_at", None) else None,
            "cancel_at_period_end": bool(getattr(updated, "cancel_at_period_end", False)),
        }
