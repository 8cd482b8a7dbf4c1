"""Curriculum endpoints."""

from typing import Optional

from fastapi import APIRouter, HTTPException, status

from history_engine.api.deps import Curriculum, Store, Unlock
from history_engine.schemas.curriculum import (
    HistoryEventSchema,
    TimelineEventSchema,
    TimelineResponse,
)

router = APIRouter()


@router.get("/phases")
async def list_phases(curriculum: Curriculum):
    """List curriculum eras."""
    return {"phases": [p.model_dump() for p in curriculum.phases()]}


@router.get("/users/{user_id}/phases/{phase_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    user_id: str,
    phase_id: str,
    curriculum: Curriculum,
    store: Store,
    unlock: Unlock,
    current: Optional[str] = None,
):
    """
    Chronological events of an era with the learner's progress.

    ``current`` is the event the client would like to show; the response's
    current_event_id falls back to the first accessible event when it is locked.
    """
    entries = await curriculum.timeline(store, unlock, user_id, phase_id)
    if entries is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Phase not found")

    ordered_ids = [entry.event.id for entry in entries]
    scores = {entry.event.id: entry.best_score for entry in entries}
    return TimelineResponse(
        phase_id=phase_id,
        title=curriculum.get_phase(phase_id).title,
        events=[
            TimelineEventSchema(
                event=HistoryEventSchema(**entry.event.model_dump()),
                **entry.model_dump(exclude={"event"}),
            )
            for entry in entries
        ],
        current_event_id=unlock.fallback_event(current, ordered_ids, scores),
    )
