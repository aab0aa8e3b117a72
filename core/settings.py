"""
Payment-related settings using pydantic-settings v2 with nested env keys.

All keys live under the ``PAYMENT__`` prefix, e.g.
``PAYMENT__STRIPE__WEBHOOK_SECRET`` or ``PAYMENT__WEBHOOK__IP_ALLOWLIST``.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    # Upper bound for one outbound provider call, in seconds
    total: float = 10.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class OrderSyncSettings(BaseModel):
    # Attempts for the version compare-and-swap before surfacing a transient error
    max_attempts: int = 5
    base_backoff: float = 0.05


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    success_url: str = "http://localhost:3000/booking/success?session_id={CHECKOUT_SESSION_ID}"
    cancel_url: str = "http://localhost:3000/booking/cancel"


class PaymentSettings(BaseSettings):
    default_provider: str = "stripe"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    sync: OrderSyncSettings = Field(default_factory=OrderSyncSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
