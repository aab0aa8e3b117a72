"""
Base payment client implementing shared concerns: timeout, retry, logging,
event mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    CheckoutSession,
    CreateCheckoutSession,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from domain.order.entity import PaymentEventType
from domain.order.events import PaymentEvent
from infrastructure.external.payments.exceptions import (
    ProviderUnavailableError,
    WebhookPayloadError,
)
from shared.codes.payment_codes import PROVIDER_EVENT_TO_INTERNAL


logger = get_logger(__name__)

T = TypeVar("T")


def payload_digest(body: bytes) -> str:
    return hashlib.sha256(body or b"").hexdigest()


class BasePaymentClient(PaymentGateway):
    provider: str = "base"
    signature_header: str = "X-Signature"

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else 10.0
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def _call_with_timeout(self, fn: Callable[[], T]) -> T:
        """Run a blocking SDK call off the event loop, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailableError(
                f"Provider call timed out after {self._timeout}s", provider=self.provider
            ) from exc

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(ProviderUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise AssertionError("unreachable")  # pragma: no cover

    # Default implementations raise to force override where needed
    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSession:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    def _extract_order_id(self, event: WebhookEvent) -> Optional[str]:
        raise NotImplementedError

    # Helpers
    def _map_event_type(self, provider_type: str) -> Optional[PaymentEventType]:
        mapping = PROVIDER_EVENT_TO_INTERNAL.get(self.provider, {})
        internal = mapping.get(provider_type)
        return PaymentEventType(internal) if internal else None

    def normalize_event(self, event: WebhookEvent) -> Optional[PaymentEvent]:  # type: ignore[override]
        """Map a provider event to the internal shape; None for event types we do not track."""
        event_type = self._map_event_type(event.type)
        if event_type is None:
            return None
        order_id = self._extract_order_id(event)
        if not order_id:
            raise WebhookPayloadError(
                "Event does not reference an order",
                provider=self.provider,
                details={"event_id": event.id, "event_type": event.type},
            )
        if event.created is None:
            raise WebhookPayloadError(
                "Event has no timestamp",
                provider=self.provider,
                details={"event_id": event.id, "event_type": event.type},
            )
        return PaymentEvent(
            event_id=event.id,
            provider=self.provider,
            event_type=event_type,
            order_id=str(order_id),
            occurred_at=int(event.created),
            payload_digest=event.payload_digest,
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
