"""
Pydantic schemas for attempt-pack purchase API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from history_engine.engines.quiz.models import PaymentStatus


class PendingPurchaseRequest(BaseModel):
    """Recorded before the learner is sent to the payment gateway."""

    product_id: str
    event_id: Optional[str] = None
    event_title: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)


class PendingPurchaseResponse(BaseModel):
    product_id: str
    event_id: Optional[str] = None
    event_title: Optional[str] = None
    quantity: Optional[int] = None
    created_at: datetime


class PaymentResultRequest(BaseModel):
    """Payment gateway result relayed by the checkout flow."""

    status: PaymentStatus
    product_id: str
    order_id: Optional[str] = None
    event_id: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)


class PurchaseOutcomeResponse(BaseModel):
    disposition: str
    granted: bool
    event_id: Optional[str] = None
    quantity: int = 0
    extra_attempts: Optional[int] = None
    locked_until: Optional[datetime] = None
