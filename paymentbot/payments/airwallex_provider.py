from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable

import httpx
import structlog

from paymentbot.engine.errors import EngineError, LinkCreationError
from paymentbot.engine.link_builder import default_reference
from paymentbot.engine.policy import resolve_interval
from paymentbot.payments.types import PaymentLink
from paymentbot.schemas.api_models import PaymentLinkRequest

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/api/v1/authentication/login"
CREATE_LINK_PATH = "/api/v1/pa/payment_links/create"


class AirwallexLinkGenerator:
    """
    Generic payment-link provider: token login, then one create call.
    Airwallex links are one-shot; recurrence is only forwarded as metadata and
    cycle limits are refused since nothing would ever enforce them.
    """

    provider_tag = "airwallex"

    def __init__(
        self,
        *,
        client_id: str,
        api_key: str,
        base_url: str = "https://api.airwallex.com",
        currency: str = "usd",
        timeout: float = 10.0,
        max_retries: int = 1,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=timezone.utc),
    ):
        self.client_id = client_id
        self.api_key = api_key
        self.currency = currency.upper()
        self.clock = clock
        # connection-level retries only; a timed-out create is never replayed
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def close(self) -> None:
        self._client.close()

    # ---------------- helpers ----------------

    def _post(self, stage: str, path: str, *, headers: Dict[str, str], json: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._client.post(path, headers=headers, json=json)
        except httpx.HTTPError as e:
            logger.error("airwallex_request_failed", stage=stage, path=path, error=str(e))
            raise LinkCreationError(stage, f"request to Airwallex failed: {e}", provider=self.provider_tag) from e

        if resp.status_code not in (200, 201):
            logger.error("airwallex_bad_status", stage=stage, status_code=resp.status_code, body=resp.text[:500])
            raise LinkCreationError(
                stage,
                f"Airwallex returned {resp.status_code}: {resp.text[:200]}",
                provider=self.provider_tag,
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise LinkCreationError(stage, "Airwallex returned a non-JSON body", provider=self.provider_tag) from e

    def authenticate(self) -> str:
        body = self._post(
            "auth",
            LOGIN_PATH,
            headers={"x-client-id": self.client_id, "x-api-key": self.api_key},
            json={},
        )
        token = body.get("token")
        if not token:
            raise LinkCreationError("auth", "Airwallex login returned no token", provider=self.provider_tag)
        logger.debug("airwallex_authenticated", expires_at=body.get("expires_at"))
        return token

    def build_request_body(self, request: PaymentLinkRequest, reference: str, now: datetime) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "amount": float(request.amount),
            "currency": self.currency,
            "title": request.serviceName,
            "description": reference,
            "reference": f"paymentbot-{int(now.timestamp() * 1_000_000)}",
            "reusable": False,
        }
        if request.isSubscription:
            interval, interval_count = resolve_interval(request.interval, request.intervalCount)
            logger.warning("airwallex_subscription_unsupported", service_name=request.serviceName)
            body["metadata"] = {
                "is_subscription": True,
                "interval": interval,
                "interval_count": interval_count,
            }
        return body

    # ---------------- public operations ----------------

    def create_link(self, request: PaymentLinkRequest, idempotency_key: Optional[str] = None) -> PaymentLink:
        if request.endCycles and request.endCycles > 0:
            raise EngineError("cycle limits are only supported for Stripe links")

        now = self.clock()
        reference = request.reference or default_reference(now)
        token = self.authenticate()

        payload = self.build_request_body(request, reference, now)
        if idempotency_key:
            # Airwallex dedups creates on request_id
            payload["request_id"] = idempotency_key
        body = self._post(
            "payment_link",
            CREATE_LINK_PATH,
            headers={"Authorization": f"Bearer {token}"},
            json=payload,
        )
        url = body.get("url")
        if not url:
            raise LinkCreationError("payment_link", "payment link URL not found in response", provider=self.provider_tag)

        link = PaymentLink(url=url, id=str(body.get("id") or ""), provider=self.provider_tag)
        logger.info("payment_link_created", provider=self.provider_tag, link_id=link.id, url=link.url, reference=reference)
        return link
