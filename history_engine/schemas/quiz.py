"""
Pydantic schemas for quiz session API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class QuizMediaSchema(BaseModel):
    type: str
    src: str
    alt: str = ""
    caption: Optional[str] = None
    credit: Optional[str] = None


class QuizQuestionSchema(BaseModel):
    """Question as shown to the learner; the answer index is withheld."""

    id: str
    prompt: str
    options: List[str]
    media: Optional[QuizMediaSchema] = None
    time_per_question_ms: Optional[int] = None


class AnswerFeedback(BaseModel):
    """Feedback for the current question once it has been answered."""

    question_id: str
    selected_index: int
    correct_index: int
    is_correct: bool
    explanation: str = ""


class QuizAnswerRequest(BaseModel):
    """An answer for the question the learner is looking at."""

    question_id: str = Field(..., min_length=1)
    option_index: int = Field(..., ge=0)


class QuizResultSchema(BaseModel):
    """Graded outcome of a completed session."""

    attempt_number: int
    score: int
    stars: int
    max_stars: int
    passed: bool
    correct: int
    total: int
    duration_ms: int
    forced: bool
    locked: bool
    locked_until: Optional[datetime] = None
    failed_attempts: int
    best_score: Optional[int] = None
    next_event_id: Optional[str] = None


class QuizStateResponse(BaseModel):
    """Session state after a quiz action."""

    event_id: str
    attempt_number: int
    phase: str
    current_index: int
    total_questions: int
    time_left_ms: int
    expires_at: datetime
    question: Optional[QuizQuestionSchema] = None
    feedback: Optional[AnswerFeedback] = None
    result: Optional[QuizResultSchema] = None
