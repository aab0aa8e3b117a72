"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckoutSession,
    WebhookEvent,
)
from domain.order.events import PaymentEvent


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str
    # Name of the HTTP header carrying the webhook signature
    signature_header: str

    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSession: ...

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent: ...

    def normalize_event(self, event: WebhookEvent) -> Optional[PaymentEvent]: ...
