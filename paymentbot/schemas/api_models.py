from __future__ import annotations

from decimal import Decimal
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Interval = Literal["day", "week", "month", "year"]
ProviderTag = Literal["stripe", "airwallex"]

# cutoffs past year 9999 are also refused when the policy is built
MAX_INTERVAL_COUNT = 365
MAX_END_CYCLES = 1000


# -------------------------
# Payment links
# -------------------------
class PaymentLinkRequest(BaseModel):
    """
    One user submission. `interval` / `intervalCount` stay None when the caller
    omits them; the link builder applies the defaults.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    serviceName: str = Field(..., min_length=1, max_length=250)
    reference: Optional[str] = Field(None, max_length=500)
    isSubscription: bool = False
    interval: Optional[Interval] = None
    intervalCount: Optional[int] = Field(None, ge=1, le=MAX_INTERVAL_COUNT)
    endCycles: int = Field(0, ge=0, le=MAX_END_CYCLES)   # 0 => unlimited
    provider: ProviderTag = "stripe"

    @field_validator("serviceName")
    @classmethod
    def _strip_service(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("service name cannot be empty")
        return v

    @field_validator("endCycles", mode="before")
    @classmethod
    def _cycles_none_is_zero(cls, v):
        return 0 if v is None else v

    @model_validator(mode="after")
    def _cycles_need_subscription(self) -> "PaymentLinkRequest":
        if self.endCycles > 0 and not self.isSubscription:
            raise ValueError("endCycles requires isSubscription=true")
        return self


class PaymentLinkResponse(BaseModel):
    url: str
    id: str
    provider: ProviderTag
    reference: Optional[str] = None


class CommandRequest(BaseModel):
    command: str = Field(..., min_length=1)      # e.g. "/create-stripe-link"
    text: str = ""


# -------------------------
# Webhooks
# -------------------------
class WebhookAck(BaseModel):
    ok: bool = True
    type: Optional[str] = None
    outcome: Optional[str] = None
