"""
Order state synchronizer.

The only component allowed to mutate a persisted order's payment status.
Each apply is one transaction: lock the order row, check the event against
the transition table and the last applied timestamp, then write the new
status with a compare-and-swap on ``version``. A lost CAS is retried on a
fresh transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger
from domain.common.exceptions import (
    OptimisticLockException,
    OrderNotFoundException,
    PrematurePaymentEventException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import EventOutcome, OrderStatus, PaymentEventType, RejectionReason
from domain.order.events import PaymentEvent


logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncResult:
    order_id: str
    applied: bool
    status: OrderStatus
    version: int
    reason: Optional[RejectionReason] = None
    previous_status: Optional[OrderStatus] = None

    @property
    def outcome(self) -> EventOutcome:
        return EventOutcome.APPLIED if self.applied else EventOutcome.REJECTED


class OrderSyncService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        max_attempts: int = 5,
        base_backoff: float = 0.05,
    ) -> None:
        self._uow_factory = uow_factory
        self._max_attempts = max(1, int(max_attempts))
        self._base_backoff = base_backoff

    async def apply(
        self,
        order_id: str,
        event_type: PaymentEventType | str,
        occurred_at: int,
        *,
        event: Optional[PaymentEvent] = None,
    ) -> SyncResult:
        """Apply one payment event to an order.

        When ``event`` is given its ledger record is written in the same
        transaction as the order mutation, so a delivery is either fully
        recorded or not at all.

        Raises:
            OrderNotFoundException: the order does not exist.
            PrematurePaymentEventException: the event is only legal after an
                event that has not arrived yet; nothing is written so the
                provider redelivers it later.
            DuplicatePaymentEventException: ``event`` was recorded concurrently.
            OptimisticLockException: version conflicts persisted past the retry budget.
        """
        event_type = PaymentEventType(event_type)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._base_backoff, max=1.0),
            retry=retry_if_exception_type(OptimisticLockException),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "order_sync_retry",
                        order_id=order_id,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await self._apply_once(order_id, event_type, occurred_at, event)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _apply_once(
        self,
        order_id: str,
        event_type: PaymentEventType,
        occurred_at: int,
        event: Optional[PaymentEvent],
    ) -> SyncResult:
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_order_id(order_id, for_update=True)
            if order is None:
                raise OrderNotFoundException(order_id)

            previous = order.status
            expected_version = order.version
            reason = order.apply_event(event_type, occurred_at)
            if reason is RejectionReason.PREMATURE_EVENT:
                logger.info(
                    "order_event_deferred",
                    order_id=order_id,
                    event_type=event_type.value,
                    status=order.status.value,
                )
                raise PrematurePaymentEventException(order_id, event_type.value, order.status.value)
            if reason is None:
                order = await uow.order_repository.update(order, expected_version)
                result = SyncResult(
                    order_id=order_id,
                    applied=True,
                    status=order.status,
                    version=order.version,
                    previous_status=previous,
                )
            else:
                result = SyncResult(
                    order_id=order_id,
                    applied=False,
                    status=order.status,
                    version=order.version,
                    reason=reason,
                    previous_status=previous,
                )

            if event is not None:
                await uow.payment_event_repository.add(event.to_record(result.outcome, result.reason))

        if result.applied:
            logger.info(
                "order_status_changed",
                order_id=order_id,
                event_type=event_type.value,
                previous_status=previous.value,
                status=result.status.value,
                version=result.version,
            )
        else:
            logger.info(
                "order_event_rejected",
                order_id=order_id,
                event_type=event_type.value,
                status=result.status.value,
                reason=result.reason.value if result.reason else None,
            )
        return result
