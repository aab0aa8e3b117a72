"""
Webhook event receiver.

Authenticates provider deliveries, normalizes them to ``PaymentEvent`` and
hands known, first-seen events to the order synchronizer. Rejected
transitions and duplicates are acknowledged (at-least-once delivery makes
them expected). Events that arrive ahead of their predecessor are refused
unrecorded, as are unknown orders, so the provider redelivers them; storage
failures propagate for the same reason.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import WebhookReceipt
from application.ports.payment_gateway import PaymentGateway
from application.services.order_sync_service import OrderSyncService
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DuplicatePaymentEventException,
    OrderNotFoundException,
    PrematurePaymentEventException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import PaymentEventRecord


logger = get_logger(__name__)


class WebhookService:
    def __init__(
        self,
        gateway: PaymentGateway,
        sync_service: OrderSyncService,
        uow_factory: Callable[..., AbstractUnitOfWork],
    ) -> None:
        self.gateway = gateway
        self.sync_service = sync_service
        self._uow_factory = uow_factory

    def _refuse(self, exc: BusinessException, **fields) -> WebhookReceipt:
        logger.warning(
            "payment_webhook_refused",
            provider=self.gateway.provider,
            error_type=exc.error_type,
            error=exc.message,
            **fields,
        )
        return WebhookReceipt(
            acknowledged=False,
            outcome="refused",
            provider=self.gateway.provider,
            reason=exc.error_type,
            error=exc,
            **fields,
        )

    async def _recorded(self, event_id: str) -> Optional[PaymentEventRecord]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_event_repository.get_by_event_id(event_id)

    async def receive(self, raw_payload: bytes, signature_header: Optional[str]) -> WebhookReceipt:
        provider = self.gateway.provider
        try:
            webhook = self.gateway.parse_webhook(raw_payload, signature_header)
        except BusinessException as exc:  # bad signature or malformed body
            return self._refuse(exc)

        try:
            event = self.gateway.normalize_event(webhook)
        except BusinessException as exc:
            return self._refuse(exc, event_id=webhook.id, event_type=webhook.type)

        if event is None:
            logger.info("payment_webhook_ignored", provider=provider, event_id=webhook.id, event_type=webhook.type)
            return WebhookReceipt(
                acknowledged=True,
                outcome="ignored",
                provider=provider,
                event_id=webhook.id,
                event_type=webhook.type,
            )

        fields = {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "order_id": event.order_id,
        }
        logger.info("payment_webhook_parsed", provider=provider, payload_digest=event.payload_digest, **fields)

        recorded = await self._recorded(event.event_id)
        if recorded is not None:
            logger.info(
                "webhook_duplicate_ignored",
                provider=provider,
                recorded_outcome=recorded.outcome.value,
                **fields,
            )
            return WebhookReceipt(acknowledged=True, outcome="duplicate", provider=provider, **fields)

        try:
            result = await self.sync_service.apply(
                event.order_id,
                event.event_type,
                event.occurred_at,
                event=event,
            )
        except (OrderNotFoundException, PrematurePaymentEventException) as exc:
            return self._refuse(exc, **fields)
        except DuplicatePaymentEventException:
            logger.info("webhook_duplicate_ignored", provider=provider, concurrent=True, **fields)
            return WebhookReceipt(acknowledged=True, outcome="duplicate", provider=provider, **fields)

        return WebhookReceipt(
            acknowledged=True,
            outcome=result.outcome.value,
            provider=provider,
            status=result.status.value,
            version=result.version,
            reason=result.reason.value if result.reason else None,
            **fields,
        )
