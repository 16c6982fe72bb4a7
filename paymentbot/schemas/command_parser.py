# paymentbot/schemas/command_parser.py
from __future__ import annotations
import shlex
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import ValidationError

from paymentbot.schemas.api_models import PaymentLinkRequest

USAGE = 'Usage: <amount> "<service_name>" [reference] [subscription: yes|no] [interval] [interval_count] [end_cycles]'

COMMAND_PROVIDERS = {
    "/create-stripe-link": "stripe",
    "/create-airwallex-link": "airwallex",
}

VALID_INTERVALS = ("day", "week", "month", "year")
TRUTHY = ("true", "yes", "1", "y")


class CommandParseError(ValueError):
    pass


def split_args(text: str) -> List[str]:
    """Whitespace split where single or double quotes group words."""
    try:
        return shlex.split(text or "")
    except ValueError as e:
        raise CommandParseError(f"could not parse arguments ({e}). {USAGE}")


def provider_for_command(command: str) -> str:
    provider = COMMAND_PROVIDERS.get((command or "").strip().lower())
    if not provider:
        raise CommandParseError(f"Unknown command: {command}")
    return provider


def _positive_int(raw: str, what: str, *, allow_zero: bool = False) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise CommandParseError(f"invalid {what} '{raw}'. Must be a whole number")
    if value < 0 or (value == 0 and not allow_zero):
        raise CommandParseError(f"{what} must be {'0 or more' if allow_zero else 'greater than 0'}")
    return value


def parse_command_text(text: str, *, provider: str = "stripe") -> PaymentLinkRequest:
    parts = split_args(text)
    if len(parts) < 2:
        raise CommandParseError(f"invalid format. {USAGE}")

    raw_amount = parts[0].strip()
    try:
        amount = Decimal(raw_amount)
    except InvalidOperation:
        raise CommandParseError(f"invalid amount '{raw_amount}'. Please provide a valid number")
    if not amount.is_finite() or amount <= 0:
        raise CommandParseError("amount must be greater than 0")

    service_name = parts[1].strip()
    if not service_name:
        raise CommandParseError("service name cannot be empty")

    reference: Optional[str] = parts[2].strip() if len(parts) > 2 and parts[2].strip() else None

    is_subscription = len(parts) > 3 and parts[3].strip().lower() in TRUTHY
    interval: Optional[str] = None
    interval_count: Optional[int] = None
    end_cycles = 0
    if is_subscription:
        if len(parts) > 4:
            interval = parts[4].strip().lower()
            if interval not in VALID_INTERVALS:
                raise CommandParseError(f"invalid interval '{interval}'. Must be one of: {', '.join(VALID_INTERVALS)}")
        if len(parts) > 5:
            interval_count = _positive_int(parts[5], "interval count")
        if len(parts) > 6:
            end_cycles = _positive_int(parts[6], "end cycles", allow_zero=True)

    try:
        return PaymentLinkRequest(
            amount=amount,
            serviceName=service_name,
            reference=reference,
            isSubscription=is_subscription,
            interval=interval,
            intervalCount=interval_count,
            endCycles=end_cycles,
            provider=provider,
        )
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ())) or "(root)"
        raise CommandParseError(f"{loc}: {first.get('msg')}")
