import os

# must be set before paymentbot.core.settings is imported
os.environ["PAYMENTS_BACKEND"] = "fake"
os.environ["ENV"] = "development"
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timezone

import pytest
import structlog
from fastapi.testclient import TestClient

from paymentbot.core.deps import get_enforcer, get_link_generators, get_stripe_provider
from paymentbot.core.security import mint_dev_token
from paymentbot.engine.enforcer import CycleLimitEnforcer
from paymentbot.engine.link_builder import SubscriptionLinkBuilder
from paymentbot.main import app
from paymentbot.payments.fake_provider import FakeStripeProvider

FIXED_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True, scope="session")
def _uncached_loggers():
    # structlog.testing.capture_logs cannot see loggers cached on first use
    structlog.configure(cache_logger_on_first_use=False)


@pytest.fixture
def fake():
    return FakeStripeProvider()


@pytest.fixture
def builder(fake):
    return SubscriptionLinkBuilder(fake, currency="usd", clock=lambda: FIXED_NOW)


@pytest.fixture
def enforcer(fake):
    return CycleLimitEnforcer(fake)


@pytest.fixture
def client(fake, builder, enforcer):
    generators = {"stripe": builder}

    def resolve(tag):
        return generators[tag]

    app.dependency_overrides[get_stripe_provider] = lambda: fake
    app.dependency_overrides[get_enforcer] = lambda: enforcer
    app.dependency_overrides[get_link_generators] = lambda: resolve
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {mint_dev_token(sub='tester')}"}
