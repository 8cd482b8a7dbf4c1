"""
Reading Tracker - coalesces scroll-position polls into progress writes.
"""

from typing import Optional

from history_engine.engines.quiz.models import ProgressRecord, ProgressUpdate
from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.kernel.events.event_store import EventStore
from history_engine.kernel.models.event_log import EventType


class ReadingTracker:
    """
    Commits a new read ratio only when it moved far enough to matter.

    A scroll report is written when it exceeds the stored ratio by at least
    ``epsilon``, when it crosses the read gate, or when it reaches 1.0.
    Anything else returns the stored record untouched.
    """

    EPSILON = 0.01

    def __init__(
        self,
        store: ProgressStore,
        epsilon: float = EPSILON,
        read_gate_ratio: Optional[float] = None,
        event_store: Optional[EventStore] = None,
    ):
        self.store = store
        self.epsilon = epsilon
        self.read_gate_ratio = read_gate_ratio if read_gate_ratio is not None else store.read_gate_ratio
        self.event_store = event_store

    def should_commit(self, stored: float, reported: float) -> bool:
        if reported <= stored:
            return False
        if reported - stored >= self.epsilon:
            return True
        if stored < self.read_gate_ratio <= reported:
            return True
        return reported >= 1.0

    async def record_scroll(self, user_id: str, event_id: str, ratio: float) -> ProgressRecord:
        ratio = min(1.0, max(0.0, ratio))
        async with self.store.transaction(user_id, event_id):
            current = await self.store.get(user_id, event_id, for_update=True)
            if not self.should_commit(current.read_ratio, ratio):
                return current
            updated = await self.store.update(user_id, event_id, ProgressUpdate(read_ratio=ratio))
            if current.completed_at is None and updated.completed_at is not None and self.event_store:
                await self.event_store.log(
                    event_type=EventType.READING_COMPLETED,
                    user_id=user_id,
                    history_event_id=event_id,
                    payload={"read_ratio": updated.read_ratio, "completed_at": updated.completed_at},
                )
        return updated
