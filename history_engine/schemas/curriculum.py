"""
Pydantic schemas for curriculum timeline API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class HistoryEventSchema(BaseModel):
    id: str
    era_id: str
    year: int
    month: Optional[int] = None
    title: str
    summary: str = ""


class TimelineEventSchema(BaseModel):
    """One event on a learner's timeline."""

    event: HistoryEventSchema
    accessible: bool
    passed: bool
    read_ratio: float
    completed_at: Optional[datetime] = None
    best_score: Optional[int] = None
    best_stars: Optional[int] = None
    locked_until: Optional[datetime] = None


class TimelineResponse(BaseModel):
    phase_id: str
    title: str
    events: List[TimelineEventSchema]
    current_event_id: Optional[str] = None
