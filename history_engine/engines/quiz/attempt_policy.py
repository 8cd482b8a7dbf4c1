"""
Attempt Policy - pass/fail bookkeeping, lockout and launch gating per event.

Per event a learner is either Open (may launch a quiz) or LockedUntil(t).
A failing attempt increments failed_attempts; once the count reaches
base_allowance + extra_attempts the event locks for lockout_hours. A passing
attempt resets the failure count and clears any lock. A purchased attempt
pack adds extra_attempts and clears an active lock immediately.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from history_engine.engines.quiz.clock import Clock
from history_engine.engines.quiz.grader import Grade, Grader
from history_engine.engines.quiz.models import (
    AttemptRecord,
    ProgressRecord,
    ProgressUpdate,
    QuizSummary,
)
from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.logging_config import get_logger

logger = get_logger(__name__)


class LaunchBlockReason(str, Enum):
    """Why a quiz may or may not be launched; drives the call-to-action."""

    OPEN = "open"
    READ_INSUFFICIENT = "read_insufficient"  # keep reading
    TIME_LOCKED = "time_locked"  # wait
    TIME_LOCKED_PURCHASABLE = "time_locked_purchasable"  # wait or buy more attempts


class LaunchGate(BaseModel):
    """Launch decision for one learner and event."""

    allowed: bool
    reason: LaunchBlockReason
    read_ratio: float
    read_gate_ratio: float
    locked_until: Optional[datetime] = None
    failed_attempts: int
    attempts_remaining: int
    next_attempt_number: int


class AttemptOutcome(BaseModel):
    """Result of recording one completed session."""

    attempt: AttemptRecord
    grade: Grade
    passed: bool
    locked: bool
    locked_until: Optional[datetime] = None
    progress: ProgressRecord


def next_attempt_number(record: ProgressRecord) -> int:
    return (record.attempts[-1].attempt_number if record.attempts else 0) + 1


class AttemptPolicy:
    """Attempt/lockout rule engine over ProgressRecords."""

    BASE_ALLOWANCE = 2
    LOCKOUT_HOURS = 12
    READ_GATE_RATIO = 0.8

    def __init__(
        self,
        store: ProgressStore,
        grader: Grader,
        clock: Optional[Clock] = None,
        base_allowance: int = BASE_ALLOWANCE,
        lockout_hours: float = LOCKOUT_HOURS,
        read_gate_ratio: float = READ_GATE_RATIO,
        attempt_pack_enabled: bool = True,
    ):
        self.store = store
        self.grader = grader
        self.clock = clock or store.clock
        self.base_allowance = base_allowance
        self.lockout_hours = lockout_hours
        self.read_gate_ratio = read_gate_ratio
        self.attempt_pack_enabled = attempt_pack_enabled

    def allowance(self, record: ProgressRecord) -> int:
        """Failures tolerated before the event locks."""
        return self.base_allowance + record.extra_attempts

    def evaluate_gate(self, record: ProgressRecord) -> LaunchGate:
        """Launch decision for a record snapshot. Lock is checked before reading."""
        now = self.clock.now()
        if record.is_locked(now):
            reason = (
                LaunchBlockReason.TIME_LOCKED_PURCHASABLE
                if self.attempt_pack_enabled
                else LaunchBlockReason.TIME_LOCKED
            )
        elif record.read_ratio < self.read_gate_ratio:
            reason = LaunchBlockReason.READ_INSUFFICIENT
        else:
            reason = LaunchBlockReason.OPEN
        return LaunchGate(
            allowed=reason == LaunchBlockReason.OPEN,
            reason=reason,
            read_ratio=record.read_ratio,
            read_gate_ratio=self.read_gate_ratio,
            locked_until=record.locked_until if record.is_locked(now) else None,
            failed_attempts=record.failed_attempts,
            attempts_remaining=max(0, self.allowance(record) - record.failed_attempts),
            next_attempt_number=next_attempt_number(record),
        )

    async def launch_gate(self, user_id: str, event_id: str) -> LaunchGate:
        return self.evaluate_gate(await self.store.get(user_id, event_id))

    async def can_launch(self, user_id: str, event_id: str) -> bool:
        return (await self.launch_gate(user_id, event_id)).allowed

    async def record_outcome(self, user_id: str, event_id: str, summary: QuizSummary) -> AttemptOutcome:
        """
        Grade a completed session, append it and apply the pass/fail transition.

        Runs inside the record's transaction so concurrent submissions cannot
        both miss the lock threshold.
        """
        async with self.store.transaction(user_id, event_id):
            return await self.apply_outcome(user_id, event_id, summary)

    async def apply_outcome(self, user_id: str, event_id: str, summary: QuizSummary) -> AttemptOutcome:
        """record_outcome for callers already inside the record's transaction."""
        current = await self.store.get(user_id, event_id, for_update=True)
        now = self.clock.now()
        attempt_number = next_attempt_number(current)
        grade = self.grader.grade_summary(summary, attempt_number)
        attempt = AttemptRecord(
            attempt_number=attempt_number,
            score=grade.score,
            stars=grade.stars,
            correct=summary.correct,
            total=summary.total,
            attempted_at=now,
            question_ids=[a.question_id for a in summary.answers],
        )
        progress = await self.store.append_attempt(user_id, event_id, attempt)

        passed = self.grader.passed(grade.score)
        locked_until: Optional[datetime] = None
        if passed:
            changes = {"failed_attempts": 0}
            if progress.completed_at is None:
                changes["completed_at"] = now
            progress = await self.store.update(user_id, event_id, ProgressUpdate(**changes))
            if progress.locked_until is not None:
                progress = await self.store.set_lock(user_id, event_id, None)
        else:
            failed = progress.failed_attempts + 1
            if failed >= self.allowance(progress):
                locked_until = now + timedelta(hours=self.lockout_hours)
                progress = await self.store.set_lock(user_id, event_id, locked_until)
                logger.info(
                    "Event locked after failed attempts",
                    extra={
                        "user_id": user_id,
                        "event_id": event_id,
                        "failed_attempts": failed,
                        "locked_until": locked_until.isoformat(),
                    },
                )
            else:
                progress = await self.store.update(
                    user_id, event_id, ProgressUpdate(failed_attempts=failed)
                )

        logger.info(
            "Quiz attempt recorded",
            extra={
                "user_id": user_id,
                "event_id": event_id,
                "attempt_number": attempt_number,
                "score": grade.score,
                "passed": passed,
            },
        )
        return AttemptOutcome(
            attempt=attempt,
            grade=grade,
            passed=passed,
            locked=locked_until is not None,
            locked_until=locked_until,
            progress=progress,
        )

    async def grant_extra_attempts(self, user_id: str, event_id: str, quantity: int) -> ProgressRecord:
        """Add purchased credits; an active lock is cleared at once."""
        async with self.store.transaction(user_id, event_id):
            return await self.apply_grant(user_id, event_id, quantity)

    async def apply_grant(self, user_id: str, event_id: str, quantity: int) -> ProgressRecord:
        """grant_extra_attempts for callers already inside the record's transaction."""
        return await self.store.grant_extra_attempts(user_id, event_id, quantity)
