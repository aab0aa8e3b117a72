"""
Order DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from application.dtos.payments import _normalize_currency


class OrderCreateDTO(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    amount: int = Field(gt=0, description="Amount in minor units")
    currency: str = Field(default="USD")
    description: Optional[str] = Field(default=None, max_length=255)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class OrderResponseDTO(BaseModel):
    order_id: str
    amount: int
    currency: str
    status: str
    external_reference: Optional[str] = None
    last_event_at: Optional[int] = None
    version: int
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, v):
        return getattr(v, "value", v)


class PaymentEventResponseDTO(BaseModel):
    event_id: str
    provider: str
    event_type: str
    occurred_at: int
    outcome: str
    reason: Optional[str] = None
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("event_type", "outcome", "reason", mode="before")
    @classmethod
    def _enum_value(cls, v):
        return getattr(v, "value", v)
