"""Order domain exports."""
from .entity import (
    ORDER_TRANSITIONS,
    EventOutcome,
    Order,
    OrderStatus,
    PaymentEventRecord,
    PaymentEventType,
    RejectionReason,
    is_reachable_later,
    next_status,
)
from .events import PaymentEvent
from .repository import OrderRepository, PaymentEventRepository

__all__ = [
    "ORDER_TRANSITIONS",
    "EventOutcome",
    "Order",
    "OrderStatus",
    "PaymentEvent",
    "PaymentEventRecord",
    "PaymentEventType",
    "RejectionReason",
    "OrderRepository",
    "PaymentEventRepository",
    "is_reachable_later",
    "next_status",
]
