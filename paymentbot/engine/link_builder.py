from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Optional, Any

import structlog

from paymentbot.engine.errors import EngineError, LinkCreationError
from paymentbot.engine.policy import (
    PolicyMetadataError,
    SubscriptionPolicyMetadata,
    resolve_interval,
    REFERENCE_KEY,
    SERVICE_NAME_KEY,
)
from paymentbot.payments.types import BillingProvider, PaymentLink, ProviderError
from paymentbot.schemas.api_models import PaymentLinkRequest

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# Stripe takes zero-decimal currencies in whole units, and three-decimal
# ones in thousandths rounded to a multiple of ten.
ZERO_DECIMAL_CURRENCIES = frozenset({
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
})
THREE_DECIMAL_CURRENCIES = frozenset({"bhd", "jod", "kwd", "omr", "tnd"})


def to_minor_units(amount: Decimal, currency: str = "usd") -> int:
    amount = Decimal(amount)
    currency = currency.lower()
    if currency in ZERO_DECIMAL_CURRENCIES:
        if amount != amount.to_integral_value():
            raise EngineError(f"{currency.upper()} amounts cannot have a fractional part")
        return int(amount)
    if currency in THREE_DECIMAL_CURRENCIES:
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)) * 10
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def default_reference(now: datetime) -> str:
    return f"REF-{int(now.timestamp())}"


class SubscriptionLinkBuilder:
    """
    Stripe-style link generation: product -> price -> payment link.

    Recurring requests get `recurring` price params. When a cycle limit is
    requested the cutoff is computed here, once, and written into the price
    metadata and the link's subscription template; the webhook side only ever
    reads it back (see paymentbot.engine.enforcer).
    """

    provider_tag = "stripe"

    def __init__(
        self,
        provider: BillingProvider,
        *,
        currency: str = "usd",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.provider = provider
        self.currency = currency.lower()
        self.clock = clock

    # ---------------- helpers ----------------

    @staticmethod
    def _validate(request: PaymentLinkRequest) -> None:
        if request.amount is None or request.amount <= 0:
            raise EngineError("amount must be greater than 0")
        if not (request.serviceName or "").strip():
            raise EngineError("service name cannot be empty")
        if request.endCycles and not request.isSubscription:
            raise EngineError("a cycle limit requires a subscription")

    def _recurring_params(self, request: PaymentLinkRequest) -> Optional[Dict[str, Any]]:
        if not request.isSubscription:
            return None
        interval, interval_count = resolve_interval(request.interval, request.intervalCount)
        return {"interval": interval, "interval_count": interval_count}

    def build_policy(self, request: PaymentLinkRequest, now: datetime) -> Optional[SubscriptionPolicyMetadata]:
        if not request.isSubscription or not request.endCycles or request.endCycles <= 0:
            return None
        return SubscriptionPolicyMetadata.build(
            now=now,
            end_cycles=request.endCycles,
            interval=request.interval,
            interval_count=request.intervalCount,
            service_name=request.serviceName,
        )

    @staticmethod
    def _stage_key(idempotency_key: Optional[str], stage: str) -> Optional[str]:
        return f"{idempotency_key}:{stage}" if idempotency_key else None

    # ---------------- public operations ----------------

    def create_link(self, request: PaymentLinkRequest, idempotency_key: Optional[str] = None) -> PaymentLink:
        """
        1) Create the product (service name + reference)
        2) Create the price, recurring and carrying the cycle policy if any
        3) Create the payment link; subscriptions inherit the policy metadata
        """
        self._validate(request)
        now = self.clock()
        reference = request.reference or default_reference(now)
        log = logger.bind(service_name=request.serviceName, reference=reference, subscription=request.isSubscription)

        unit_amount = to_minor_units(request.amount, self.currency)
        recurring = self._recurring_params(request)
        try:
            policy = self.build_policy(request, now)
        except PolicyMetadataError as e:
            raise EngineError(str(e)) from e
        policy_md = policy.to_metadata() if policy else None

        if policy:
            log.info(
                "cycle_limit_encoded",
                end_cycles=policy.end_cycles,
                interval=policy.interval,
                interval_count=policy.interval_count,
                cutoff=policy.cutoff,
                cutoff_at=policy.cutoff_at.isoformat(),
            )
        elif recurring:
            log.info("unlimited_subscription", **recurring)

        try:
            product_id = self.provider.create_product(
                name=request.serviceName,
                description=reference,
                idempotency_key=self._stage_key(idempotency_key, "product"),
            )
        except ProviderError as e:
            log.error("product_creation_failed", error=str(e))
            raise LinkCreationError("product", str(e), status_code=e.status_code) from e

        try:
            price_id = self.provider.create_price(
                product_id=product_id,
                unit_amount=unit_amount,
                currency=self.currency,
                recurring=recurring,
                metadata=policy_md,
                idempotency_key=self._stage_key(idempotency_key, "price"),
            )
        except ProviderError as e:
            log.error("price_creation_failed", product_id=product_id, error=str(e))
            raise LinkCreationError("price", str(e), status_code=e.status_code) from e

        subscription_md: Optional[Dict[str, str]] = None
        if request.isSubscription:
            subscription_md = {SERVICE_NAME_KEY: request.serviceName, REFERENCE_KEY: reference}
            if policy_md:
                subscription_md.update(policy_md)

        try:
            link = self.provider.create_payment_link(
                price_id=price_id,
                one_time=not request.isSubscription,
                metadata={"reference": reference},
                subscription_metadata=subscription_md,
                idempotency_key=self._stage_key(idempotency_key, "payment_link"),
            )
        except ProviderError as e:
            log.error("payment_link_creation_failed", product_id=product_id, price_id=price_id, error=str(e))
            raise LinkCreationError("payment_link", str(e), status_code=e.status_code) from e

        log.info("payment_link_created", link_id=link.id, url=link.url, price_id=price_id)
        return link
