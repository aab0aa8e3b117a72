"""
Order payment events.

`PaymentEvent` is the provider-neutral shape every inbound notification is
normalized into before it reaches the order state synchronizer.
Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass

from .entity import (
    EventOutcome,
    PaymentEventRecord,
    PaymentEventType,
    RejectionReason,
)


@dataclass(frozen=True)
class PaymentEvent:
    event_id: str
    provider: str
    event_type: PaymentEventType
    order_id: str
    occurred_at: int
    payload_digest: str

    def to_record(self, outcome: EventOutcome, reason: RejectionReason | None = None) -> PaymentEventRecord:
        return PaymentEventRecord(
            event_id=self.event_id,
            provider=self.provider,
            order_id=self.order_id,
            event_type=self.event_type,
            occurred_at=self.occurred_at,
            payload_digest=self.payload_digest,
            outcome=outcome,
            reason=reason,
        )
