# paymentbot/core/deps.py
import threading
from functools import lru_cache
from typing import Callable, Dict

from paymentbot.core.settings import settings
from paymentbot.engine.enforcer import CycleLimitEnforcer
from paymentbot.engine.registry import build_generator
from paymentbot.payments.stripe_provider import StripePaymentProvider
from paymentbot.payments.fake_provider import FakeStripeProvider
from paymentbot.payments.types import LinkGenerator


@lru_cache(maxsize=1)
def _payments_singleton():
    if settings.PAYMENTS_BACKEND == "fake" or not settings.STRIPE_SECRET_KEY:
        return FakeStripeProvider()
    return StripePaymentProvider(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        max_network_retries=settings.PROVIDER_MAX_RETRIES,
    )


def get_stripe_provider():
    # FastAPI will call this each request, but we return the cached singleton
    return _payments_singleton()


_generators: Dict[str, LinkGenerator] = {}
_generators_lock = threading.Lock()


def get_link_generator(tag: str) -> LinkGenerator:
    # generators hold only credentials and an HTTP client, so one per tag is reused.
    # Sync routes run in the threadpool, hence the lock.
    with _generators_lock:
        gen = _generators.get(tag)
        if gen is None:
            gen = build_generator(tag, settings=settings, billing=get_stripe_provider())
            _generators[tag] = gen
        return gen


def close_link_generators() -> None:
    """Release generator HTTP clients; called on application shutdown."""
    with _generators_lock:
        generators = list(_generators.values())
        _generators.clear()
    for gen in generators:
        close = getattr(gen, "close", None)
        if callable(close):
            close()


def get_enforcer() -> CycleLimitEnforcer:
    return CycleLimitEnforcer(get_stripe_provider())


def get_link_generators() -> Callable[[str], LinkGenerator]:
    return get_link_generator
