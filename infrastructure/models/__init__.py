"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, PaymentEventModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PaymentEventModel",
]
