from __future__ import annotations

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request, Header, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from paymentbot.core.deps import get_stripe_provider, get_enforcer
from paymentbot.engine.enforcer import (
    CycleLimitEnforcer,
    CycleLimitNotification,
    SUBSCRIPTION_CREATED,
    to_dict,
)
from paymentbot.payments.fake_provider import FakeStripeProvider
from paymentbot.schemas.api_models import WebhookAck

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/stripe", tags=["Stripe"])

MAX_BODY_BYTES = 65536


# -------------------- webhook --------------------

@router.post("/webhook", response_model=WebhookAck)
async def webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    provider=Depends(get_stripe_provider),
    enforcer: CycleLimitEnforcer = Depends(get_enforcer),
):
    """
    Handles:
      - customer.subscription.created -> schedule cancellation for cycle-limited subscriptions
      - checkout.session.completed    -> logged only; the subscription event does the work
    Once the signature checks out the response is always 200, whatever the
    handler outcome, so business failures never trigger redelivery storms.
    """
    payload = await request.body()
    if len(payload) > MAX_BODY_BYTES:
        raise HTTPException(status_code=413, detail="Webhook payload too large")

    # In real Stripe mode we require a signature. In fake mode we don't.
    if not isinstance(provider, FakeStripeProvider) and not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    try:
        event: Dict[str, Any] = to_dict(provider.verify_signature(payload, stripe_signature or ""))
    except (TypeError, ValueError):
        # valid JSON that is not an event object (a bare number, a list) lands here too
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    event_id = event.get("id")
    event_type = event.get("type")

    # Basic shape guard
    if not event_id or not event_type or not isinstance(obj, dict) or not obj:
        raise HTTPException(status_code=400, detail="Malformed webhook event")

    log = logger.bind(event_id=event_id, event_type=event_type)

    # -------------------- handlers --------------------

    if event_type == SUBSCRIPTION_CREATED:
        notification = CycleLimitNotification.from_event(event)
        outcome = await run_in_threadpool(enforcer.handle_subscription_created, notification)
        return WebhookAck(type=event_type, outcome=outcome.value)

    if event_type == "checkout.session.completed":
        log.info(
            "checkout_session_completed",
            session_id=obj.get("id"),
            mode=obj.get("mode"),
            subscription_id=obj.get("subscription"),
            payment_link=obj.get("payment_link"),
        )
        return WebhookAck(type=event_type)

    # no-op for other events
    log.info("webhook_event_unhandled")
    return WebhookAck(type=event_type)
