"""
Pydantic schemas for progress and launch-gate API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AttemptSchema(BaseModel):
    attempt_number: int
    score: int
    stars: int
    correct: int
    total: int
    attempted_at: datetime


class ProgressResponse(BaseModel):
    """A learner's progress on one history event."""

    event_id: str
    read_ratio: float
    completed_at: Optional[datetime] = None
    best_score: Optional[int] = None
    best_stars: Optional[int] = None
    last_attempt_at: Optional[datetime] = None
    failed_attempts: int = 0
    extra_attempts: int = 0
    locked_until: Optional[datetime] = None
    is_locked: bool = False
    attempts: List[AttemptSchema] = []


class ReadingUpdateRequest(BaseModel):
    """Scroll position report from the dossier reader."""

    read_ratio: float = Field(..., ge=0.0, le=1.0)


class LaunchGateResponse(BaseModel):
    """Whether a quiz may be launched, and why not."""

    event_id: str
    allowed: bool
    reason: str
    read_ratio: float
    read_gate_ratio: float
    locked_until: Optional[datetime] = None
    failed_attempts: int
    attempts_remaining: int
    next_attempt_number: int
