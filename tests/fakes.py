"""In-memory test doubles for the unit of work, repositories and gateway.

Repositories write through to a shared store and keep an undo log so a
rolled back unit of work leaves no trace. Reads snapshot the row and then
yield to the event loop, which lets ``asyncio.gather`` interleave
concurrent transactions between their read and their write.
"""
from __future__ import annotations

import asyncio
import copy
import hashlib
import hmac
import json
import time
from typing import Callable, List, Optional

from application.dtos.payments import CheckoutSession, CreateCheckoutSession
from domain.common.exceptions import (
    DuplicatePaymentEventException,
    OptimisticLockException,
    OrderAlreadyExistsException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentEventRecord
from domain.order.repository import OrderRepository, PaymentEventRepository


WEBHOOK_SECRET = "whsec_test"


class InMemoryStore:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.events: dict[str, PaymentEventRecord] = {}
        self.forced_conflicts = 0
        self._next_id = 1

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_order(self, order_id: str = "o1", amount: int = 5000, currency: str = "USD", **kwargs) -> Order:
        order = Order(id=self.next_id(), order_id=order_id, amount=amount, currency=currency, **kwargs)
        self.orders[order_id] = copy.deepcopy(order)
        return order

    def order(self, order_id: str = "o1") -> Order:
        return copy.deepcopy(self.orders[order_id])


class FakeOrderRepository(OrderRepository):
    def __init__(self, store: InMemoryStore, undo: List[Callable[[], None]]):
        self.store = store
        self.undo = undo

    async def create(self, order: Order) -> Order:
        if order.order_id in self.store.orders:
            raise OrderAlreadyExistsException(order.order_id)
        order.id = self.store.next_id()
        self.store.orders[order.order_id] = copy.deepcopy(order)
        self.undo.append(lambda: self.store.orders.pop(order.order_id, None))
        return order

    async def get_by_order_id(self, order_id: str, *, for_update: bool = False) -> Optional[Order]:
        found = self.store.orders.get(order_id)
        snapshot = copy.deepcopy(found) if found else None
        await asyncio.sleep(0)
        return snapshot

    async def update(self, order: Order, expected_version: int) -> Order:
        current = self.store.orders.get(order.order_id)
        if self.store.forced_conflicts > 0:
            self.store.forced_conflicts -= 1
            raise OptimisticLockException(order.order_id, expected_version)
        if current is None or current.version != expected_version:
            raise OptimisticLockException(order.order_id, expected_version)
        self.store.orders[order.order_id] = copy.deepcopy(order)

        def _restore():
            self.store.orders[order.order_id] = current

        self.undo.append(_restore)
        return order

    async def exists_by_order_id(self, order_id: str) -> bool:
        return order_id in self.store.orders


class FakePaymentEventRepository(PaymentEventRepository):
    def __init__(self, store: InMemoryStore, undo: List[Callable[[], None]]):
        self.store = store
        self.undo = undo

    async def add(self, record: PaymentEventRecord) -> PaymentEventRecord:
        if record.event_id in self.store.events:
            raise DuplicatePaymentEventException(record.event_id)
        record.id = self.store.next_id()
        self.store.events[record.event_id] = copy.deepcopy(record)
        self.undo.append(lambda: self.store.events.pop(record.event_id, None))
        return record

    async def get_by_event_id(self, event_id: str) -> Optional[PaymentEventRecord]:
        found = self.store.events.get(event_id)
        return copy.deepcopy(found) if found else None

    async def list_by_order_id(self, order_id: str) -> List[PaymentEventRecord]:
        return [copy.deepcopy(r) for r in self.store.events.values() if r.order_id == order_id]


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self._undo: List[Callable[[], None]] = []

    async def __aenter__(self) -> "FakeUnitOfWork":
        self.order_repository = FakeOrderRepository(self.store, self._undo)
        self.payment_event_repository = FakePaymentEventRepository(self.store, self._undo)
        return self

    async def commit(self) -> None:
        self._undo.clear()
        self._committed = True

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self._committed = False


class StubGateway:
    """Payment gateway double recording outbound session requests."""

    provider = "stub"
    signature_header = "X-Stub-Signature"

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.requests: List[CreateCheckoutSession] = []
        self.error = error

    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSession:
        self.requests.append(req)
        if self.error is not None:
            raise self.error
        handle = f"cs_test_{len(self.requests)}"
        return CheckoutSession(
            session_handle=handle,
            redirect_target=f"https://checkout.example.test/pay/{handle}",
            provider=self.provider,
            order_id=req.order_id,
        )

    def parse_webhook(self, body, signature):
        raise NotImplementedError

    def normalize_event(self, event):
        raise NotImplementedError


def stripe_event(
    event_id: str,
    event_type: str,
    order_id: Optional[str] = "o1",
    created: Optional[int] = 100,
    *,
    use_client_reference: bool = False,
) -> dict:
    obj: dict = {"id": "pi_test_1", "object": "payment_intent", "metadata": {}}
    if order_id is not None:
        if use_client_reference:
            obj["client_reference_id"] = order_id
        else:
            obj["metadata"]["order_id"] = order_id
    event = {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }
    if created is not None:
        event["created"] = created
    return event


def sign_payload(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value the way Stripe signs deliveries."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{body.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def signed_delivery(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
    body = json.dumps(event).encode("utf-8")
    return body, sign_payload(body, secret)
