"""
Application service orchestrating the checkout-session use-case.

This class depends only on the application PaymentGateway port, the unit of
work abstraction and DTOs. Gateway implementations are provided by
infrastructure and must be injected from the composition root (API),
keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib
from typing import Callable

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckoutSession,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    CheckoutSessionConflictException,
    OptimisticLockException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


def _ensure_idempotency_key(req: CreateCheckoutSession, provider: str) -> None:
    if req.idempotency_key:
        return
    # Stable, reproducible key derived from business identifiers (no timestamp),
    # so a caller retry after a provider timeout reuses the same session.
    base = f"checkout|{req.order_id}|{req.amount}|{req.currency}|{provider.lower()}"
    req.idempotency_key = hashlib.sha256(base.encode("utf-8")).hexdigest()


class PaymentService:
    def __init__(self, gateway: PaymentGateway, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory

    async def create_session(self, order_id: str, amount: int, currency: str) -> CheckoutSession:
        """Start a hosted payment session for a pending order.

        The caller's amount is only compared against the stored order; the
        stored values are what the provider is asked to charge.

        Raises:
            OrderNotFoundException: unknown order.
            DomainValidationException: amount/currency differ from the order.
            CheckoutSessionConflictException: a session already exists or the
                order is no longer pending.
            ProviderUnavailableError: transient provider failure, nothing persisted.
        """
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        order.ensure_amount_matches(amount, currency)
        order.ensure_can_start_checkout()

        req = CreateCheckoutSession(
            order_id=order.order_id,
            amount=order.amount,
            currency=order.currency,
            description=order.description,
            metadata={"order_id": order.order_id},
        )
        _ensure_idempotency_key(req, self.gateway.provider)
        logger.info(
            "checkout_session_request",
            order_id=order_id,
            provider=self.gateway.provider,
            idempotency_key=req.idempotency_key,
        )
        session = await self.gateway.create_checkout_session(req)

        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_order_id(order_id, for_update=True)
            if order is None:
                raise OrderNotFoundException(order_id)
            expected_version = order.version
            order.attach_external_reference(session.session_handle)
            try:
                await uow.order_repository.update(order, expected_version)
            except OptimisticLockException as exc:
                # A concurrent request attached its session first
                raise CheckoutSessionConflictException(order_id) from exc

        logger.info(
            "checkout_session_created",
            order_id=order_id,
            provider=session.provider,
            session_handle=session.session_handle,
            version=order.version,
        )
        return session
