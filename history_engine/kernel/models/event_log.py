"""
Immutable event log for audit trail.

Attempts, locks, grants and reading completion are logged here in the same
transaction as the progress change they describe.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from history_engine.kernel.models.base import Base, generate_uuid


class EventType(str, Enum):
    """All event types for the audit log."""

    # Reading
    READING_COMPLETED = "reading.completed"

    # Quiz
    QUIZ_STARTED = "quiz.started"
    QUIZ_ABANDONED = "quiz.abandoned"
    QUIZ_ATTEMPT_RECORDED = "quiz.attempt_recorded"
    QUIZ_PASSED = "quiz.passed"
    QUIZ_FAILED = "quiz.failed"

    # Attempt budget
    EVENT_LOCKED = "attempts.locked"
    ATTEMPTS_GRANTED = "attempts.granted"
    PURCHASE_IGNORED = "attempts.purchase_ignored"


class EventLog(Base):
    """
    Immutable audit event log.

    This table is append-only - no updates or deletes allowed.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # History event (dossier) the entry concerns; None for user-level entries
    history_event_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_user_event", "user_id", "history_event_id"),
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        event_type = self.event_type.value if hasattr(self.event_type, "value") else self.event_type
        return f"<EventLog {event_type} {self.user_id}:{self.history_event_id}>"
