# paymentbot/api/payment_links.py
from __future__ import annotations
from typing import Callable, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status

from paymentbot.core.deps import get_link_generators
from paymentbot.engine.errors import EngineError, LinkCreationError
from paymentbot.payments.types import LinkGenerator
from paymentbot.schemas.api_models import CommandRequest, PaymentLinkRequest, PaymentLinkResponse
from paymentbot.schemas.command_parser import CommandParseError, parse_command_text, provider_for_command

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Payment links"])


def _create(
    body: PaymentLinkRequest,
    generators: Callable[[str], LinkGenerator],
    idempotency_key: Optional[str],
) -> PaymentLinkResponse:
    try:
        generator = generators(body.provider)
        link = generator.create_link(body, idempotency_key=idempotency_key)
    except EngineError as e:
        raise HTTPException(status_code=400, detail={"type": "validation_error", "message": str(e)})
    except LinkCreationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "type": "provider_error",
                "provider": e.provider,
                "stage": e.stage,
                "message": str(e),
            },
        )
    return PaymentLinkResponse(url=link.url, id=link.id, provider=link.provider, reference=body.reference)


# Provider calls block, so these are plain `def` routes (run in the threadpool).
@router.post("/payment-links", response_model=PaymentLinkResponse, status_code=status.HTTP_201_CREATED)
def create_payment_link(
    body: PaymentLinkRequest,
    generators: Callable[[str], LinkGenerator] = Depends(get_link_generators),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    return _create(body, generators, idempotency_key)


@router.post("/commands", response_model=PaymentLinkResponse, status_code=status.HTTP_201_CREATED)
def run_command(
    body: CommandRequest,
    generators: Callable[[str], LinkGenerator] = Depends(get_link_generators),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """
    Slash-command text forwarded by a chat front-end, e.g.
    `/create-stripe-link` with `29.99 "Premium plan" INV-7 yes month 1 12`.
    """
    try:
        provider = provider_for_command(body.command)
        request = parse_command_text(body.text, provider=provider)
    except CommandParseError as e:
        raise HTTPException(status_code=400, detail={"type": "parse_error", "message": str(e)})
    logger.info("command_parsed", command=body.command, service_name=request.serviceName, provider=provider)
    return _create(request, generators, idempotency_key)
