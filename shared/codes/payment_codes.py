"""
Payment specific codes and provider event mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    PROVIDER_UNSUPPORTED = 60005

    # Webhook / order sync (61xxx)
    WEBHOOK_PAYLOAD_INVALID = 61000
    WEBHOOK_SOURCE_FORBIDDEN = 61001
    EVENT_DUPLICATE = 61002
    CHECKOUT_SESSION_CONFLICT = 61003
    CONCURRENT_UPDATE = 61004
    EVENT_OUT_OF_ORDER = 61005


# Provider event type -> internal payment event type.
# Types absent from a provider's table are acknowledged and discarded.
PROVIDER_EVENT_TO_INTERNAL = {
    "stripe": {
        # manual capture: funds held, waiting for capture
        "payment_intent.amount_capturable_updated": "authorized",
        "payment_intent.succeeded": "captured",
        "payment_intent.payment_failed": "failed",
        "payment_intent.canceled": "failed",
        "charge.refunded": "refunded",
    },
}
