"""
Progress endpoints - dossier reading progress and the quiz launch gate.
"""

from fastapi import APIRouter

from history_engine.api.deps import Policy, Store, Tracker
from history_engine.engines.quiz import LaunchGate, ProgressRecord, ProgressStore
from history_engine.schemas.progress import (
    AttemptSchema,
    LaunchGateResponse,
    ProgressResponse,
    ReadingUpdateRequest,
)

router = APIRouter()


def progress_to_schema(record: ProgressRecord, store: ProgressStore) -> ProgressResponse:
    return ProgressResponse(
        event_id=record.event_id,
        read_ratio=record.read_ratio,
        completed_at=record.completed_at,
        best_score=record.best_score,
        best_stars=record.best_stars,
        last_attempt_at=record.last_attempt_at,
        failed_attempts=record.failed_attempts,
        extra_attempts=record.extra_attempts,
        locked_until=record.locked_until,
        is_locked=record.is_locked(store.clock.now()),
        attempts=[AttemptSchema(**a.model_dump(exclude={"question_ids"})) for a in record.attempts],
    )


def gate_to_schema(event_id: str, gate: LaunchGate) -> LaunchGateResponse:
    return LaunchGateResponse(event_id=event_id, **gate.model_dump(mode="json"))


@router.get("/{event_id}/progress", response_model=ProgressResponse)
async def get_progress(user_id: str, event_id: str, store: Store):
    """Current progress record; a fresh default when the learner never opened the event."""
    return progress_to_schema(await store.get(user_id, event_id), store)


@router.post("/{event_id}/reading", response_model=ProgressResponse)
async def report_reading(user_id: str, event_id: str, data: ReadingUpdateRequest, tracker: Tracker):
    """Report the reader's scroll position as a ratio of the dossier."""
    record = await tracker.record_scroll(user_id, event_id, data.read_ratio)
    return progress_to_schema(record, tracker.store)


@router.get("/{event_id}/launch-gate", response_model=LaunchGateResponse)
async def get_launch_gate(user_id: str, event_id: str, policy: Policy):
    """Whether a quiz may be launched now, with the reason when it may not."""
    return gate_to_schema(event_id, await policy.launch_gate(user_id, event_id))
