"""
Purchase Bridge - turns a completed attempt-pack payment into attempt credits.

The checkout flow is external. Before sending the learner to the gateway it
may record a pending purchase (which event the pack is for); when the gateway
result comes back without that metadata, the pending purchase supplies it.
"""

import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ValidationError

from history_engine.engines.quiz.attempt_policy import AttemptPolicy
from history_engine.engines.quiz.models import (
    PaymentResult,
    PaymentStatus,
    PendingPurchase,
    ProgressRecord,
)
from history_engine.kernel.events.event_store import EventStore
from history_engine.kernel.models.event_log import EventType
from history_engine.kernel.storage.backends import KeyValueBackend
from history_engine.logging_config import get_logger

logger = get_logger(__name__)

PENDING_PREFIX = "digital_purchase_pending:"
APPLIED_PREFIX = "purchase_applied:"


class PurchaseDisposition(str, Enum):
    GRANTED = "granted"
    PAYMENT_NOT_SUCCESSFUL = "payment_not_successful"
    NOT_ATTEMPT_PACK = "not_attempt_pack"
    ALREADY_APPLIED = "already_applied"
    MISSING_EVENT = "missing_event"


class PurchaseOutcome(BaseModel):
    disposition: PurchaseDisposition
    event_id: Optional[str] = None
    quantity: int = 0
    progress: Optional[ProgressRecord] = None

    @property
    def granted(self) -> bool:
        return self.disposition == PurchaseDisposition.GRANTED


class PurchaseBridge:
    """Consumes payment results for the attempt-pack product."""

    PRODUCT_ID = "attempt-pack-10"
    DEFAULT_QUANTITY = 10

    def __init__(
        self,
        backend: KeyValueBackend,
        policy: AttemptPolicy,
        product_id: str = PRODUCT_ID,
        default_quantity: int = DEFAULT_QUANTITY,
        event_store: Optional[EventStore] = None,
    ):
        self.backend = backend
        self.policy = policy
        self.product_id = product_id
        self.default_quantity = default_quantity
        self.event_store = event_store

    async def set_pending(self, user_id: str, pending: Optional[PendingPurchase]) -> None:
        await self.backend.write(
            f"{PENDING_PREFIX}{user_id}",
            pending.model_dump_json() if pending is not None else None,
        )

    async def get_pending(self, user_id: str) -> Optional[PendingPurchase]:
        key = f"{PENDING_PREFIX}{user_id}"
        raw = await self.backend.read(key)
        if not raw:
            return None
        try:
            return PendingPurchase.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable pending purchase", extra={"key": key, "error": str(e)})
            await self.backend.write(key, None)
            return None

    async def pop_pending(self, user_id: str, product_id: Optional[str] = None) -> Optional[PendingPurchase]:
        """Remove and return the pending purchase; left in place if it is for another product."""
        pending = await self.get_pending(user_id)
        if pending is None:
            return None
        if product_id and pending.product_id != product_id:
            return None
        await self.set_pending(user_id, None)
        return pending

    async def attempt_pack_purchased(self, user_id: str, event_id: str, quantity: int) -> ProgressRecord:
        """The purchase-completed signal: grant credits, clearing any lock."""
        async with self.policy.store.transaction(user_id, event_id):
            return await self._grant(user_id, event_id, quantity)

    async def _grant(
        self, user_id: str, event_id: str, quantity: int, order_id: Optional[str] = None
    ) -> ProgressRecord:
        progress = await self.policy.apply_grant(user_id, event_id, quantity)
        if order_id:
            await self.backend.write(
                f"{APPLIED_PREFIX}{order_id}",
                json.dumps({"user_id": user_id, "event_id": event_id, "quantity": quantity}),
            )
        logger.info(
            "Attempt pack applied",
            extra={"user_id": user_id, "event_id": event_id, "quantity": quantity, "order_id": order_id},
        )
        if self.event_store:
            await self.event_store.log(
                event_type=EventType.ATTEMPTS_GRANTED,
                user_id=user_id,
                history_event_id=event_id,
                payload={
                    "quantity": quantity,
                    "extra_attempts": progress.extra_attempts,
                    "order_id": order_id,
                },
            )
        return progress

    async def _ignore(
        self,
        user_id: str,
        result: PaymentResult,
        disposition: PurchaseDisposition,
        event_id: Optional[str] = None,
    ) -> PurchaseOutcome:
        logger.info(
            "Payment result ignored",
            extra={"user_id": user_id, "order_id": result.order_id, "disposition": disposition.value},
        )
        if self.event_store:
            await self.event_store.log(
                event_type=EventType.PURCHASE_IGNORED,
                user_id=user_id,
                history_event_id=event_id,
                payload={
                    "disposition": disposition.value,
                    "status": result.status.value,
                    "product_id": result.product_id,
                    "order_id": result.order_id,
                },
            )
        return PurchaseOutcome(disposition=disposition, event_id=event_id)

    async def handle_payment_result(self, user_id: str, result: PaymentResult) -> PurchaseOutcome:
        """Apply a gateway result. Each order_id is applied at most once."""
        if result.status != PaymentStatus.SUCCESS:
            return await self._ignore(user_id, result, PurchaseDisposition.PAYMENT_NOT_SUCCESSFUL)
        if result.product_id != self.product_id:
            return await self._ignore(user_id, result, PurchaseDisposition.NOT_ATTEMPT_PACK)

        applied_key = f"{APPLIED_PREFIX}{result.order_id}" if result.order_id else None
        if applied_key and await self.backend.read(applied_key):
            return await self._ignore(
                user_id, result, PurchaseDisposition.ALREADY_APPLIED, event_id=result.event_id
            )

        event_id = result.event_id
        quantity = result.quantity
        pending = await self.pop_pending(user_id, self.product_id)
        if pending is not None:
            event_id = event_id or pending.event_id
            quantity = quantity or pending.quantity

        if not event_id:
            logger.warning(
                "Attempt pack paid without a target event",
                extra={"user_id": user_id, "order_id": result.order_id},
            )
            return await self._ignore(user_id, result, PurchaseDisposition.MISSING_EVENT)

        quantity = quantity or self.default_quantity
        async with self.policy.store.transaction(user_id, event_id):
            # Checked again under the lock; another delivery of the order may have committed
            duplicate = bool(applied_key and await self.backend.read(applied_key, for_update=True))
            if not duplicate:
                progress = await self._grant(user_id, event_id, quantity, order_id=result.order_id)
        if duplicate:
            return await self._ignore(user_id, result, PurchaseDisposition.ALREADY_APPLIED, event_id=event_id)
        return PurchaseOutcome(
            disposition=PurchaseDisposition.GRANTED,
            event_id=event_id,
            quantity=quantity,
            progress=progress,
        )

