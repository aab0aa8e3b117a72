"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.common.exceptions import BusinessException

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}


def _normalize_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class CheckoutSessionRequest(BaseModel):
    """Caller-supplied payment intent for an order; verified against the stored order."""

    amount: int = Field(gt=0, description="Amount in minor units")
    currency: str = Field(default="USD")

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class CreateCheckoutSession(BaseModel):
    """Outbound request to a provider. Amount and currency come from the stored order."""

    order_id: str
    amount: int = Field(gt=0)
    currency: str
    description: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class CheckoutSession(BaseModel):
    session_handle: str
    redirect_target: Optional[str] = None
    provider: str
    order_id: str


class WebhookEvent(BaseModel):
    """Authenticated provider notification before normalization."""

    id: str
    type: str
    provider: str
    created: Optional[int] = None
    data: dict[str, Any]
    payload_digest: str
    # raw body for traceability (optional)
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class WebhookReceipt(BaseModel):
    """Result of one webhook delivery.

    ``acknowledged`` is the durability boundary: providers retry anything
    that is not acknowledged. ``outcome`` is one of applied, rejected,
    duplicate, ignored (acknowledged) or refused (not acknowledged).
    """

    acknowledged: bool
    outcome: str
    provider: str
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None
    version: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[BusinessException] = Field(default=None, exclude=True)

    model_config = ConfigDict(arbitrary_types_allowed=True)
