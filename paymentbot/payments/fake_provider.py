# paymentbot/payments/fake_provider.py
from __future__ import annotations
from typing import Optional, Dict, Any, List
import json
from datetime import datetime, timezone

from paymentbot.payments.types import PaymentLink, ProviderError


class FakeStripeProvider:
    """
    In-memory, protocol-compliant fake for tests/local runs.
    Mirrors the signatures in paymentbot.payments.types.BillingProvider.

    - Products / prices / payment links: stored with Stripe-like ids and fields.
    - Subscriptions: `simulate_checkout` instantiates one from a link and copies
      the link's subscription metadata, the way Stripe does.
    - Webhooks: verify_signature just parses JSON (no signature validation).
    - `fail_on` makes a named stage raise ProviderError, for error-path tests.
    """

    def __init__(self, *, fail_on: Optional[str] = None):
        self.products: Dict[str, Dict[str, Any]] = {}
        self.prices: Dict[str, Dict[str, Any]] = {}
        self.links: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        # (subscription_id, cancel_at) per scheduling call, in order
        self.cancellation_calls: List[tuple] = []
        # idempotency_key -> object id
        self._idempotent: Dict[str, str] = {}
        self.fail_on = fail_on
        self._counter: int = 0

    # ----------------------- helpers -----------------------

    @staticmethod
    def _now_ts() -> int:
        # wall-clock now in UTC (epoch seconds)
        return int(datetime.now(tz=timezone.utc).timestamp())

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_test_{self._counter}"

    def _maybe_fail(self, stage: str) -> None:
        if self.fail_on == stage:
            raise ProviderError(f"Stripe {stage} failed: simulated outage", provider="stripe", status_code=503)

    def _replay(self, idempotency_key: Optional[str]) -> Optional[str]:
        if idempotency_key:
            return self._idempotent.get(idempotency_key)
        return None

    def _remember(self, idempotency_key: Optional[str], obj_id: str) -> None:
        if idempotency_key:
            self._idempotent[idempotency_key] = obj_id

    @property
    def call_count(self) -> int:
        return len(self.products) + len(self.prices) + len(self.links) + len(self.cancellation_calls)

    # ---------------- webhooks / signature -----------------

    def verify_signature(self, payload: bytes, sig_header: str):
        """
        In fake, ignore signature and just parse the payload as JSON.
        Compatible with real handler expecting a dict-like event.
        """
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        return json.loads(payload)

    # --------------------- catalog -------------------------

    def create_product(
        self, *, name: str, description: Optional[str] = None, idempotency_key: Optional[str] = None
    ) -> str:
        self._maybe_fail("product")
        existing = self._replay(idempotency_key)
        if existing:
            return existing
        pid = self._next_id("prod")
        self.products[pid] = {"id": pid, "name": name, "description": description}
        self._remember(idempotency_key, pid)
        return pid

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
        self._maybe_fail("price")
        existing = self._replay(idempotency_key)
        if existing:
            return existing
        pid = self._next_id("price")
        self.prices[pid] = {
            "id": pid,
            "product": product_id,
            "unit_amount": unit_amount,
            "currency": currency.lower(),
            "type": "recurring" if recurring else "one_time",
            "recurring": dict(recurring) if recurring else None,
            "metadata": dict(metadata or {}),
        }
        self._remember(idempotency_key, pid)
        return pid

    # --------------------- links ---------------------------

    def create_payment_link(
        self,
        *,
        price_id: str,
        one_time: bool,
        metadata: Optional[Dict[str, str]] = None,
        subscription_metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> PaymentLink:
        self._maybe_fail("payment_link")
        existing = self._replay(idempotency_key)
        if existing:
            link = self.links[existing]
            return PaymentLink(url=link["url"], id=link["id"], provider="stripe")
        lid = self._next_id("plink")
        link = {
            "id": lid,
            "url": f"https://buy.stripe.local/{lid}",
            "line_items": [{"price": price_id, "quantity": 1}],
            "metadata": dict(metadata or {}),
        }
        if one_time:
            link["customer_creation"] = "always"
            link["payment_intent_data"] = {"setup_future_usage": "off_session"}
        else:
            link["subscription_data"] = {"metadata": dict(subscription_metadata or {})}
        self.links[lid] = link
        self._remember(idempotency_key, lid)
        return PaymentLink(url=link["url"], id=lid, provider="stripe")

    # ------------------- subscriptions ---------------------

    def simulate_checkout(self, link_id: str, *, customer_id: str = "cus_test_1") -> Dict[str, Any]:
        """
        Stand-in for a customer paying through a recurring link: creates the
        subscription and returns the `customer.subscription.created` event Stripe would send.
        """
        link = self.links[link_id]
        sub_data = link.get("subscription_data")
        if sub_data is None:
            raise ValueError(f"payment link {link_id} is not recurring")
        sid = self._next_id("sub")
        now = self._now_ts()
        sub = {
            "id": sid,
            "object": "subscription",
            "customer": customer_id,
            "status": "active",
            "current_period_start": now,
            "cancel_at": None,
            "cancel_at_period_end": False,
            "metadata": dict(sub_data.get("metadata") or {}),
        }
        self.subscriptions[sid] = sub
        return {
            "id": self._next_id("evt"),
            "type": "customer.subscription.created",
            "data": {"object": dict(sub)},
        }

    def schedule_subscription_cancellation(self, *, subscription_id: str, cancel_at: int) -> Dict[str, Any]:
        self._maybe_fail("schedule")
        self.cancellation_calls.append((subscription_id, int(cancel_at)))
        sub = self.subscriptions.get(subscription_id)
        if not sub:
            # unknown ids are accepted so webhook tests need no prior checkout
            sub = {"id": subscription_id, "status": "active", "metadata": {}}
            self.subscriptions[subscription_id] = sub
        sub["cancel_at"] = int(cancel_at)
        sub["cancel_at_period_end"] = True
        return {
            "id": sub["id"],
            "status": sub.get("status", "active"),
            "cancel_at": sub["cancel_at"],
            "cancel_at_period_end": True,
        }
