from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from paymentbot.engine.policy import PolicyMetadataError, SubscriptionPolicyMetadata
from paymentbot.payments.types import BillingProvider, ProviderError

logger = structlog.get_logger(__name__)

SUBSCRIPTION_CREATED = "customer.subscription.created"


def to_dict(obj: Any) -> Dict[str, Any]:
    """
    Normalize Stripe SDK objects and plain dicts to a plain dict.
    Older SDKs expose .to_dict_recursive(); newer ones only .to_dict().
    """
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    for name in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, name, None)
        if callable(fn):
            return fn()
    return dict(obj)


class EnforcementOutcome(str, Enum):
    UNLIMITED = "unlimited"      # no cycle limit on the subscription
    SCHEDULED = "scheduled"      # cancel_at set at the stored cutoff
    CORRUPT = "corrupt"          # limit present but unusable; nothing sent
    FAILED = "failed"            # provider refused the update
    IGNORED = "ignored"          # not a subscription event we act on


@dataclass(frozen=True)
class CycleLimitNotification:
    event_id: Optional[str]
    event_type: str
    subscription_id: Optional[str]
    status: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: Any) -> "CycleLimitNotification":
        event = to_dict(event)
        obj = to_dict(to_dict(event.get("data")).get("object"))
        customer = obj.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            # non-object metadata carries no cycle limit we can read
            metadata = to_dict(metadata) if hasattr(metadata, "to_dict") else {}
        return cls(
            event_id=event.get("id"),
            event_type=event.get("type") or "",
            subscription_id=obj.get("id"),
            status=obj.get("status"),
            customer_id=customer,
            metadata={str(k): str(v) for k, v in metadata.items()},
        )


class CycleLimitEnforcer:
    """
    Turns a verified `customer.subscription.created` event into a scheduled
    cancellation when the subscription carries a cycle limit.

    Never raises: every failure is terminal for the event and only logged, so
    the webhook can always acknowledge. Re-delivery re-sends the same cutoff,
    which Stripe treats as a no-op, so no processed-event bookkeeping is kept.
    """

    def __init__(self, provider: BillingProvider):
        self.provider = provider

    def handle_subscription_created(self, notification: CycleLimitNotification) -> EnforcementOutcome:
        log = logger.bind(
            event_id=notification.event_id,
            subscription_id=notification.subscription_id,
            status=notification.status,
            customer_id=notification.customer_id,
        )
        if notification.event_type != SUBSCRIPTION_CREATED or not notification.subscription_id:
            log.warning("cycle_limit_event_ignored", event_type=notification.event_type)
            return EnforcementOutcome.IGNORED

        try:
            policy = SubscriptionPolicyMetadata.from_metadata(notification.metadata)
        except PolicyMetadataError as e:
            log.error("cycle_limit_metadata_corrupt", error=str(e), metadata=notification.metadata)
            return EnforcementOutcome.CORRUPT

        if policy is None:
            log.info("subscription_unlimited")
            return EnforcementOutcome.UNLIMITED

        log = log.bind(
            end_cycles=policy.end_cycles,
            cutoff=policy.cutoff,
            cutoff_at=policy.cutoff_at.isoformat(),
            interval=policy.interval,
            interval_count=policy.interval_count,
            service_name=policy.service_name,
        )
        try:
            self.provider.schedule_subscription_cancellation(
                subscription_id=notification.subscription_id,
                cancel_at=policy.cutoff,
            )
        except ProviderError as e:
            # subscription keeps billing until an operator sets cancel_at by hand
            log.error("cycle_limit_schedule_failed", error=str(e), status_code=e.status_code)
            return EnforcementOutcome.FAILED

        log.info("cycle_limit_scheduled")
        return EnforcementOutcome.SCHEDULED
