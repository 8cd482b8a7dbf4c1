"""
Attempt-pack purchase endpoints.

The checkout itself happens at the payment gateway; these endpoints record
what the learner is buying and apply the gateway's result.
"""

from fastapi import APIRouter

from history_engine.api.deps import ClockDep, Purchases
from history_engine.engines.quiz import PaymentResult, PendingPurchase
from history_engine.schemas.purchase import (
    PaymentResultRequest,
    PendingPurchaseRequest,
    PendingPurchaseResponse,
    PurchaseOutcomeResponse,
)

router = APIRouter()


@router.post("/pending", response_model=PendingPurchaseResponse)
async def set_pending_purchase(
    user_id: str,
    data: PendingPurchaseRequest,
    bridge: Purchases,
    clock: ClockDep,
):
    """Remember which event an attempt pack is being bought for."""
    pending = PendingPurchase(**data.model_dump(), created_at=clock.now())
    await bridge.set_pending(user_id, pending)
    return PendingPurchaseResponse(**pending.model_dump())


@router.post("/result", response_model=PurchaseOutcomeResponse)
async def apply_payment_result(user_id: str, data: PaymentResultRequest, bridge: Purchases):
    """Apply a payment result. Replays of the same order_id grant nothing."""
    outcome = await bridge.handle_payment_result(user_id, PaymentResult(**data.model_dump()))
    return PurchaseOutcomeResponse(
        disposition=outcome.disposition.value,
        granted=outcome.granted,
        event_id=outcome.event_id,
        quantity=outcome.quantity,
        extra_attempts=outcome.progress.extra_attempts if outcome.progress else None,
        locked_until=outcome.progress.locked_until if outcome.progress else None,
    )
