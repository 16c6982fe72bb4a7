"""
HTTP surface: payment-link creation, slash commands, the Stripe webhook.
"""
import json

import pytest

from paymentbot.core.deps import get_link_generators
from paymentbot.engine.link_builder import SubscriptionLinkBuilder
from paymentbot.main import app
from paymentbot.payments.fake_provider import FakeStripeProvider

T = 1704067200


class TestAuthGate:

    def test_health_is_public(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_payment_links_require_bearer(self, client):
        resp = client.post("/payment-links", json={"amount": 10, "serviceName": "X"})
        assert resp.status_code == 401

    def test_bad_token_is_rejected(self, client):
        resp = client.post(
            "/payment-links",
            json={"amount": 10, "serviceName": "X"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert resp.status_code == 401

    def test_dev_token_route(self, client):
        resp = client.get("/auth/dev-token", params={"sub": "ops"})
        assert resp.status_code == 200
        assert resp.json()["token"]


class TestPaymentLinks:

    def test_cycle_limited_subscription(self, client, auth_headers, fake):
        resp = client.post(
            "/payment-links",
            headers=auth_headers,
            json={
                "amount": 29.99,
                "serviceName": "Premium",
                "reference": "INV-7",
                "isSubscription": True,
                "interval": "month",
                "intervalCount": 1,
                "endCycles": 12,
            },
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["provider"] == "stripe"
        assert data["reference"] == "INV-7"
        md = fake.links[data["id"]]["subscription_data"]["metadata"]
        assert md["end_date_cycles"] == "12"
        assert md["end_timestamp"] == str(T + 12 * 2592000)

    def test_validation_happens_before_provider_calls(self, client, auth_headers, fake):
        bad_bodies = [
            {"amount": 0, "serviceName": "X"},
            {"amount": 10, "serviceName": "   "},
            {"amount": 10, "serviceName": "X", "isSubscription": True, "interval": "fortnight"},
            {"amount": 10, "serviceName": "X", "isSubscription": True, "endCycles": -1},
            {"amount": 10, "serviceName": "X", "isSubscription": True, "endCycles": "twelve"},
            {"amount": 10, "serviceName": "X", "endCycles": 3},
            {"amount": 10, "serviceName": "X", "isSubscription": True, "interval": "year", "endCycles": 1000000},
            {"amount": 10, "serviceName": "X", "isSubscription": True, "intervalCount": 100000, "endCycles": 2},
        ]
        for body in bad_bodies:
            resp = client.post("/payment-links", headers=auth_headers, json=body)
            assert resp.status_code == 422, body
        assert fake.products == {}

    def test_provider_failure_names_the_stage(self, client, auth_headers):
        failing = SubscriptionLinkBuilder(FakeStripeProvider(fail_on="price"))
        app.dependency_overrides[get_link_generators] = lambda: (lambda tag: failing)

        resp = client.post("/payment-links", headers=auth_headers, json={"amount": 10, "serviceName": "X"})
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["type"] == "provider_error"
        assert detail["stage"] == "price"
        assert "price" in detail["message"]

    def test_cutoff_past_year_9999_is_a_validation_error(self, client, auth_headers, fake):
        body = {
            "amount": 10, "serviceName": "X", "isSubscription": True,
            "interval": "year", "intervalCount": 365, "endCycles": 1000,
        }
        resp = client.post("/payment-links", headers=auth_headers, json=body)
        assert resp.status_code == 400
        assert resp.json()["detail"]["type"] == "validation_error"
        assert fake.call_count == 0

    def test_idempotency_key_is_honoured(self, client, auth_headers, fake):
        headers = {**auth_headers, "Idempotency-Key": "req-1"}
        body = {"amount": 10, "serviceName": "X", "isSubscription": True}
        first = client.post("/payment-links", headers=headers, json=body).json()
        second = client.post("/payment-links", headers=headers, json=body).json()
        assert first["id"] == second["id"]
        assert len(fake.links) == 1


class TestCommands:

    def test_stripe_command(self, client, auth_headers, fake):
        resp = client.post(
            "/commands",
            headers=auth_headers,
            json={"command": "/create-stripe-link", "text": '9.99 "Basic" REF-1 yes'},
        )
        assert resp.status_code == 201, resp.text
        price = next(iter(fake.prices.values()))
        assert price["recurring"] == {"interval": "month", "interval_count": 1}
        assert price["unit_amount"] == 999

    def test_parse_error(self, client, auth_headers):
        resp = client.post(
            "/commands", headers=auth_headers, json={"command": "/create-stripe-link", "text": "abc"}
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["type"] == "parse_error"

    def test_unknown_command(self, client, auth_headers):
        resp = client.post("/commands", headers=auth_headers, json={"command": "/create-invoice", "text": ""})
        assert resp.status_code == 400
        assert "Unknown command" in resp.json()["detail"]["message"]


class TestStripeWebhook:

    @staticmethod
    def _post(client, event):
        return client.post("/stripe/webhook", content=json.dumps(event), headers={"Content-Type": "application/json"})

    def test_schedules_cancellation_and_acks(self, client, fake):
        event = {
            "id": "evt_1",
            "type": "customer.subscription.created",
            "data": {"object": {"id": "sub_1", "status": "active", "metadata": {
                "end_date_cycles": "6", "end_timestamp": "1700000000", "interval": "year", "interval_count": "1",
            }}},
        }
        first = self._post(client, event)
        second = self._post(client, event)
        assert first.status_code == second.status_code == 200
        assert first.json() == {"ok": True, "type": "customer.subscription.created", "outcome": "scheduled"}
        assert second.json()["outcome"] == "scheduled"
        assert fake.cancellation_calls == [("sub_1", 1700000000), ("sub_1", 1700000000)]

    def test_corrupt_metadata_still_acks(self, client, fake):
        event = {
            "id": "evt_2",
            "type": "customer.subscription.created",
            "data": {"object": {"id": "sub_2", "metadata": {"end_date_cycles": "3"}}},
        }
        resp = self._post(client, event)
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "corrupt"
        assert fake.cancellation_calls == []

    def test_out_of_range_cutoff_is_acked_as_corrupt(self, client, fake):
        event = {
            "id": "evt_4",
            "type": "customer.subscription.created",
            "data": {"object": {"id": "sub_4", "metadata": {
                "end_date_cycles": "3", "end_timestamp": "99999999999999999",
            }}},
        }
        resp = self._post(client, event)
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "corrupt"
        assert fake.cancellation_calls == []

    @pytest.mark.parametrize(
        "body",
        [
            123,
            "evt",
            [1, 2],
            {"id": "evt_5", "type": "customer.subscription.created", "data": "sub_5"},
            {"id": "evt_5", "type": "customer.subscription.created", "data": {"object": "sub_5"}},
            {"id": "evt_5", "type": "customer.subscription.created", "data": {"object": ["sub_5"]}},
        ],
    )
    def test_events_that_are_not_objects_are_rejected(self, client, fake, body):
        assert self._post(client, body).status_code == 400
        assert fake.cancellation_calls == []

    def test_checkout_completed_is_only_logged(self, client, fake):
        event = {
            "id": "evt_3",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "mode": "subscription", "subscription": "sub_3"}},
        }
        resp = self._post(client, event)
        assert resp.status_code == 200
        assert resp.json()["outcome"] is None
        assert fake.cancellation_calls == []

    def test_malformed_payloads_are_rejected(self, client):
        assert client.post("/stripe/webhook", content=b"not json").status_code == 400
        assert self._post(client, {"type": "customer.subscription.created"}).status_code == 400

    def test_end_to_end_from_link_to_cancellation(self, client, auth_headers, fake):
        resp = client.post(
            "/payment-links",
            headers=auth_headers,
            json={"amount": 15, "serviceName": "Coaching", "isSubscription": True, "interval": "day", "endCycles": 30},
        )
        event = fake.simulate_checkout(resp.json()["id"])
        ack = self._post(client, event)
        assert ack.json()["outcome"] == "scheduled"
        sub_id = event["data"]["object"]["id"]
        assert fake.subscriptions[sub_id]["cancel_at"] == T + 30 * 86400
