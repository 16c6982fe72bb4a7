from __future__ import annotations
from typing import Optional


class EngineError(ValueError):
    """Request rejected before any provider call."""


class LinkCreationError(Exception):
    """
    A provider call failed while building a link. `stage` names the step
    (product, price, payment_link, auth) so the requester knows how far it got.
    Objects created by earlier stages are left in place.
    """

    def __init__(self, stage: str, message: str, *, provider: str = "stripe", status_code: Optional[int] = None):
        super().__init__(message)
        self.stage = stage
        self.provider = provider
        self.status_code = status_code
