import asyncio

import pytest

from application.services.order_sync_service import OrderSyncService
from domain.common.exceptions import (
    DuplicatePaymentEventException,
    OptimisticLockException,
    OrderNotFoundException,
    PrematurePaymentEventException,
)
from domain.order import (
    EventOutcome,
    OrderStatus,
    PaymentEvent,
    PaymentEventType,
    RejectionReason,
)


def _event(event_id: str, event_type: PaymentEventType, ts: int, order_id: str = "o1") -> PaymentEvent:
    return PaymentEvent(
        event_id=event_id,
        provider="stripe",
        event_type=event_type,
        order_id=order_id,
        occurred_at=ts,
        payload_digest="0" * 64,
    )


@pytest.fixture
def sync(uow_factory) -> OrderSyncService:
    return OrderSyncService(uow_factory, max_attempts=5, base_backoff=0)


@pytest.mark.asyncio
async def test_apply_moves_order_and_records_event(store, sync):
    store.add_order(version=1, external_reference="cs_1")

    result = await sync.apply("o1", PaymentEventType.AUTHORIZED, 100, event=_event("e1", PaymentEventType.AUTHORIZED, 100))

    assert result.applied
    assert result.previous_status is OrderStatus.PENDING
    assert (result.status, result.version) == (OrderStatus.AUTHORIZED, 2)
    order = store.order()
    assert order.status is OrderStatus.AUTHORIZED
    assert order.version == 2
    assert order.last_event_at == 100
    assert store.events["e1"].outcome is EventOutcome.APPLIED


@pytest.mark.asyncio
async def test_rejected_event_leaves_order_untouched_but_is_recorded(store, sync):
    store.add_order(status=OrderStatus.AUTHORIZED, version=1)

    result = await sync.apply("o1", "authorized", 100, event=_event("e1", PaymentEventType.AUTHORIZED, 100))

    assert not result.applied
    assert result.reason is RejectionReason.ILLEGAL_TRANSITION
    assert result.outcome is EventOutcome.REJECTED
    assert store.order().version == 1
    record = store.events["e1"]
    assert record.outcome is EventOutcome.REJECTED
    assert record.reason is RejectionReason.ILLEGAL_TRANSITION


@pytest.mark.asyncio
async def test_stale_event_is_rejected(store, sync):
    store.add_order(status=OrderStatus.AUTHORIZED, last_event_at=100, version=2)

    result = await sync.apply("o1", PaymentEventType.CAPTURED, 50)

    assert result.reason is RejectionReason.STALE_EVENT
    assert store.order().status is OrderStatus.AUTHORIZED
    assert store.order().version == 2


@pytest.mark.asyncio
async def test_unknown_order_raises_not_found(store, sync):
    with pytest.raises(OrderNotFoundException):
        await sync.apply("missing", PaymentEventType.AUTHORIZED, 100, event=_event("e1", PaymentEventType.AUTHORIZED, 100, "missing"))
    assert store.events == {}


@pytest.mark.asyncio
async def test_duplicate_event_rolls_back_order_change(store, sync):
    store.add_order()
    await sync.apply("o1", PaymentEventType.AUTHORIZED, 100, event=_event("e1", PaymentEventType.AUTHORIZED, 100))
    store.orders["o1"].status = OrderStatus.PENDING  # pretend the order was reset out of band
    before = store.order()

    with pytest.raises(DuplicatePaymentEventException):
        await sync.apply("o1", PaymentEventType.AUTHORIZED, 200, event=_event("e1", PaymentEventType.AUTHORIZED, 200))

    after = store.order()
    assert (after.status, after.version, after.last_event_at) == (before.status, before.version, before.last_event_at)


@pytest.mark.asyncio
async def test_version_conflict_is_retried(store, sync):
    store.add_order()
    store.forced_conflicts = 2

    result = await sync.apply("o1", PaymentEventType.AUTHORIZED, 100)

    assert result.applied
    assert store.order().version == 1


@pytest.mark.asyncio
async def test_persistent_conflict_surfaces_after_retry_budget(store, uow_factory):
    sync = OrderSyncService(uow_factory, max_attempts=3, base_backoff=0)
    store.add_order()
    store.forced_conflicts = 10

    with pytest.raises(OptimisticLockException):
        await sync.apply("o1", PaymentEventType.AUTHORIZED, 100)

    assert store.forced_conflicts == 7
    assert store.order().version == 0


@pytest.mark.asyncio
async def test_racing_events_apply_exactly_once(store, sync):
    store.add_order()

    results = await asyncio.gather(
        sync.apply("o1", PaymentEventType.AUTHORIZED, 100, event=_event("e1", PaymentEventType.AUTHORIZED, 100)),
        sync.apply("o1", PaymentEventType.AUTHORIZED, 101, event=_event("e2", PaymentEventType.AUTHORIZED, 101)),
    )

    assert sorted(r.applied for r in results) == [False, True]
    rejected = next(r for r in results if not r.applied)
    assert rejected.reason is RejectionReason.ILLEGAL_TRANSITION
    order = store.order()
    assert order.status is OrderStatus.AUTHORIZED
    assert order.version == 1
    assert len(store.events) == 2


@pytest.mark.asyncio
async def test_event_ahead_of_its_predecessor_is_refused_without_a_trace(store, sync):
    store.add_order()

    with pytest.raises(PrematurePaymentEventException):
        await sync.apply("o1", PaymentEventType.CAPTURED, 200, event=_event("e2", PaymentEventType.CAPTURED, 200))

    assert store.order().version == 0
    assert store.events == {}


@pytest.mark.asyncio
async def test_concurrent_chain_converges_once_refused_events_are_redelivered(store, sync):
    store.add_order()
    chain = [
        ("e1", PaymentEventType.AUTHORIZED, 100),
        ("e2", PaymentEventType.CAPTURED, 200),
        ("e3", PaymentEventType.REFUNDED, 300),
    ]

    results = await asyncio.gather(
        *(sync.apply("o1", t, ts, event=_event(eid, t, ts)) for eid, t, ts in chain),
        return_exceptions=True,
    )

    assert results[0].applied and results[0].version == 1
    assert all(isinstance(r, PrematurePaymentEventException) for r in results[1:])
    assert set(store.events) == {"e1"}

    # the provider keeps redelivering whatever was not acknowledged
    undelivered = chain[1:]
    for _ in range(len(chain)):
        refused = []
        for eid, t, ts in undelivered:
            try:
                assert (await sync.apply("o1", t, ts, event=_event(eid, t, ts))).applied
            except PrematurePaymentEventException:
                refused.append((eid, t, ts))
        undelivered = refused

    assert undelivered == []
    order = store.order()
    assert (order.status, order.version, order.last_event_at) == (OrderStatus.REFUNDED, 3, 300)
    assert {eid: r.outcome for eid, r in store.events.items()} == {
        "e1": EventOutcome.APPLIED,
        "e2": EventOutcome.APPLIED,
        "e3": EventOutcome.APPLIED,
    }
