"""
Engine data model: progress records, attempts, questions and session snapshots.

All models are JSON-serializable pydantic models; persisted documents are
produced with ``model_dump_json()`` and read back with ``model_validate_json()``.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuizMedia(BaseModel):
    """Image or video attached to a question."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image", "video"]
    src: str
    alt: str = ""
    caption: Optional[str] = None
    credit: Optional[str] = None


class QuizQuestion(BaseModel):
    """A scoreable single-answer question."""

    model_config = ConfigDict(frozen=True)

    id: str
    event_id: Optional[str] = None
    sub_event_id: Optional[str] = None
    prompt: str
    options: List[str] = Field(min_length=2)
    answer_index: int = Field(ge=0)
    explanation: str = ""
    media: Optional[QuizMedia] = None
    time_per_question_ms: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _answer_in_range(self) -> "QuizQuestion":
        if self.answer_index >= len(self.options):
            raise ValueError(
                f"answer_index {self.answer_index} out of range for {len(self.options)} options"
            )
        return self


class AttemptRecord(BaseModel):
    """One graded quiz attempt. Never mutated once appended."""

    attempt_number: int = Field(ge=1)
    score: int = Field(ge=0, le=100)
    stars: int = Field(ge=0)
    correct: int = Field(ge=0)
    total: int = Field(ge=0)
    attempted_at: datetime
    question_ids: List[str] = []


class ProgressRecord(BaseModel):
    """A learner's interaction with one history event (dossier)."""

    event_id: str
    read_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    completed_at: Optional[datetime] = None
    attempts: List[AttemptRecord] = []
    best_score: Optional[int] = None
    best_stars: Optional[int] = None
    last_attempt_at: Optional[datetime] = None
    failed_attempts: int = Field(default=0, ge=0)
    extra_attempts: int = Field(default=0, ge=0)
    locked_until: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


class ProgressUpdate(BaseModel):
    """Fields a caller may merge into a progress record."""

    read_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    completed_at: Optional[datetime] = None
    failed_attempts: Optional[int] = Field(default=None, ge=0)


class QuizAnswerRecord(BaseModel):
    """Answer state for one question of a session."""

    question_id: str
    selected_index: Optional[int] = None
    correct_index: int
    is_correct: bool = False
    explanation: str = ""


class QuizSummary(BaseModel):
    """The single artifact a completed session emits."""

    correct: int
    total: int
    answers: List[QuizAnswerRecord]
    duration_ms: int
    started_at: datetime
    forced: bool = False


class SessionPhase(str, Enum):
    """Quiz session states."""

    IN_PROGRESS = "in_progress"
    AWAITING_ADVANCE = "awaiting_advance"  # answered correctly, auto-advance pending
    REVEALED = "revealed"  # answered incorrectly, explanation shown
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class PersistedQuizState(BaseModel):
    """In-progress quiz snapshot kept between requests."""

    event_id: str
    attempt_number: int = Field(ge=1)
    started_at: datetime
    expires_at: datetime
    questions: List[QuizQuestion]
    answers: List[QuizAnswerRecord]
    current_index: int = 0
    phase: SessionPhase = SessionPhase.IN_PROGRESS
    phase_changed_at: datetime


class PendingPurchase(BaseModel):
    """Digital purchase started but not yet confirmed by the gateway."""

    product_id: str
    event_id: Optional[str] = None
    event_title: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    created_at: datetime


class PaymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"


class PaymentResult(BaseModel):
    """Opaque payment-gateway result as relayed by the checkout flow."""

    status: PaymentStatus
    product_id: str
    order_id: Optional[str] = None
    event_id: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
