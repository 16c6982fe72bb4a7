from __future__ import annotations
from typing import Callable, Dict

from paymentbot.core.settings import Settings
from paymentbot.engine.errors import EngineError
from paymentbot.engine.link_builder import SubscriptionLinkBuilder
from paymentbot.payments.airwallex_provider import AirwallexLinkGenerator
from paymentbot.payments.types import BillingProvider, LinkGenerator


def _stripe(settings: Settings, billing: BillingProvider) -> LinkGenerator:
    return SubscriptionLinkBuilder(billing, currency=settings.CURRENCY)


def _airwallex(settings: Settings, billing: BillingProvider) -> LinkGenerator:
    if not settings.airwallex_enabled:
        raise EngineError("Airwallex is not configured (AIRWALLEX_CLIENT_ID / AIRWALLEX_API_KEY)")
    return AirwallexLinkGenerator(
        client_id=settings.AIRWALLEX_CLIENT_ID,
        api_key=settings.AIRWALLEX_API_KEY,
        base_url=settings.AIRWALLEX_BASE_URL,
        currency=settings.CURRENCY,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        max_retries=settings.PROVIDER_MAX_RETRIES,
    )


GENERATORS: Dict[str, Callable[[Settings, BillingProvider], LinkGenerator]] = {
    "stripe": _stripe,
    "airwallex": _airwallex,
}


def build_generator(tag: str, *, settings: Settings, billing: BillingProvider) -> LinkGenerator:
    """
    Returns the link generator registered for a provider tag.
    Unknown tags are a validation error, not a fallback.
    """
    factory = GENERATORS.get((tag or "").lower())
    if not factory:
        raise EngineError(f"Unsupported payment provider '{tag}'")
    return factory(settings, billing)
