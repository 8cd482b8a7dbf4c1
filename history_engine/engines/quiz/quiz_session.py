"""
Quiz Session - timed, single-pass question sequence.

States:
    IN_PROGRESS(i) --select correct--> AWAITING_ADVANCE(i) --delay/proceed--> IN_PROGRESS(i+1)
    IN_PROGRESS(i) --select wrong----> REVEALED(i) ---------proceed---------> IN_PROGRESS(i+1)
    last question proceeds to COMPLETED; countdown expiry forces COMPLETED from
    any non-terminal state; abandon() ends in ABANDONED with no summary.

Transitions that are not valid from the current state are ignored. The
countdown covers the whole session and is advanced by polling tick() against
the injected clock.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from history_engine.engines.quiz.clock import Clock, SystemClock
from history_engine.engines.quiz.models import (
    PersistedQuizState,
    QuizAnswerRecord,
    QuizQuestion,
    QuizSummary,
    SessionPhase,
)

_TERMINAL = (SessionPhase.COMPLETED, SessionPhase.ABANDONED)


class QuizSession:
    """One quiz attempt in progress."""

    DEFAULT_TIME_PER_QUESTION_MS = 25000
    ADVANCE_DELAY_MS = 800

    def __init__(
        self,
        questions: Sequence[QuizQuestion],
        clock: Optional[Clock] = None,
        default_time_per_question_ms: int = DEFAULT_TIME_PER_QUESTION_MS,
        advance_delay_ms: int = ADVANCE_DELAY_MS,
        on_complete: Optional[Callable[[QuizSummary], None]] = None,
    ):
        self.questions = tuple(questions)
        self.clock = clock or SystemClock()
        self.advance_delay_ms = advance_delay_ms
        self._on_complete = on_complete
        self._summary: Optional[QuizSummary] = None

        if self.questions:
            self.total_duration_ms = sum(
                q.time_per_question_ms or default_time_per_question_ms for q in self.questions
            )
        else:
            self.total_duration_ms = default_time_per_question_ms

        self.started_at: datetime = self.clock.now()
        self.expires_at: datetime = self.started_at + timedelta(milliseconds=self.total_duration_ms)
        self.answers: List[QuizAnswerRecord] = [
            QuizAnswerRecord(
                question_id=q.id,
                selected_index=None,
                correct_index=q.answer_index,
                is_correct=False,
                explanation=q.explanation,
            )
            for q in self.questions
        ]
        self.current_index = 0
        self.phase = SessionPhase.IN_PROGRESS
        self.phase_changed_at: datetime = self.started_at

    # -- state inspection --

    @property
    def is_terminal(self) -> bool:
        return self.phase in _TERMINAL

    @property
    def revealed(self) -> bool:
        return self.phase == SessionPhase.REVEALED

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if self.is_terminal or not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def time_left_ms(self) -> int:
        left = (self.expires_at - self.clock.now()).total_seconds() * 1000
        return max(0, int(left))

    @property
    def summary(self) -> Optional[QuizSummary]:
        return self._summary

    def _expired(self) -> bool:
        return self.clock.now() >= self.expires_at

    def _set_phase(self, phase: SessionPhase) -> None:
        self.phase = phase
        self.phase_changed_at = self.clock.now()

    # -- transitions --

    def select_answer(self, option_index: int, question_id: Optional[str] = None) -> bool:
        """
        Record the first answer for the current question. Returns False when ignored.

        A ``question_id`` that is not the current question's id is ignored too:
        the click was meant for a question the session already moved past.
        """
        if self.phase != SessionPhase.IN_PROGRESS or not self.questions:
            return False
        if self._expired():
            self.force_complete()
            return False
        question = self.questions[self.current_index]
        if question_id is not None and question_id != question.id:
            return False
        record = self.answers[self.current_index]
        if record.selected_index is not None:
            return False
        if not 0 <= option_index < len(question.options):
            return False

        is_correct = option_index == question.answer_index
        self.answers[self.current_index] = record.model_copy(
            update={"selected_index": option_index, "is_correct": is_correct}
        )
        self._set_phase(SessionPhase.AWAITING_ADVANCE if is_correct else SessionPhase.REVEALED)
        return True

    def proceed(self) -> bool:
        """Move past an answered question; completes the session after the last one."""
        if self.phase not in (SessionPhase.AWAITING_ADVANCE, SessionPhase.REVEALED):
            return False
        if self._expired():
            self.force_complete()
            return True
        if self.current_index >= len(self.questions) - 1:
            self._complete(forced=False)
            return True
        self.current_index += 1
        self._set_phase(SessionPhase.IN_PROGRESS)
        return True

    def tick(self) -> SessionPhase:
        """Poll the countdown and the pending auto-advance."""
        if self.is_terminal:
            return self.phase
        if self._expired():
            self.force_complete()
        elif self.phase == SessionPhase.AWAITING_ADVANCE:
            due = self.phase_changed_at + timedelta(milliseconds=self.advance_delay_ms)
            if self.clock.now() >= due:
                self.proceed()
        return self.phase

    def force_complete(self) -> Optional[QuizSummary]:
        """End the session now; unanswered questions count as incorrect."""
        if self.is_terminal:
            return None
        self.answers = [
            a if a.selected_index is not None else a.model_copy(update={"is_correct": False})
            for a in self.answers
        ]
        return self._complete(forced=True)

    def abandon(self) -> bool:
        """User closed the quiz; nothing is emitted."""
        if self.is_terminal:
            return False
        self._set_phase(SessionPhase.ABANDONED)
        return True

    def _complete(self, forced: bool) -> QuizSummary:
        elapsed_ms = int((self.clock.now() - self.started_at).total_seconds() * 1000)
        summary = QuizSummary(
            correct=sum(1 for a in self.answers if a.is_correct),
            total=len(self.answers),
            answers=list(self.answers),
            duration_ms=max(0, min(elapsed_ms, self.total_duration_ms)),
            started_at=self.started_at,
            forced=forced,
        )
        self._set_phase(SessionPhase.COMPLETED)
        self._summary = summary
        if self._on_complete is not None:
            self._on_complete(summary)
        return summary

    # -- persistence --

    def snapshot(self, event_id: str, attempt_number: int) -> PersistedQuizState:
        return PersistedQuizState(
            event_id=event_id,
            attempt_number=attempt_number,
            started_at=self.started_at,
            expires_at=self.expires_at,
            questions=list(self.questions),
            answers=list(self.answers),
            current_index=self.current_index,
            phase=self.phase,
            phase_changed_at=self.phase_changed_at,
        )

    @classmethod
    def restore(
        cls,
        state: PersistedQuizState,
        clock: Optional[Clock] = None,
        advance_delay_ms: int = ADVANCE_DELAY_MS,
        on_complete: Optional[Callable[[QuizSummary], None]] = None,
    ) -> "QuizSession":
        """Rebuild a session from its snapshot; the original countdown keeps running."""
        session = cls(
            state.questions,
            clock=clock,
            advance_delay_ms=advance_delay_ms,
            on_complete=on_complete,
        )
        session.started_at = state.started_at
        session.expires_at = state.expires_at
        session.total_duration_ms = int((state.expires_at - state.started_at).total_seconds() * 1000)
        session.answers = list(state.answers)
        session.current_index = min(state.current_index, max(0, len(session.questions) - 1))
        session.phase = state.phase
        session.phase_changed_at = state.phase_changed_at
        return session
