"""
Quiz Service - drives quiz sessions across requests.

Each call restores the in-progress session from its persisted snapshot,
polls the countdown, applies one transition and then either saves the
snapshot again or, once the session completed, records the graded outcome
and clears the snapshot. Each call runs in the record's transaction: the
snapshot is read FOR UPDATE and the change is committed before the record
lock is released, so one session yields exactly one recorded attempt.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from history_engine.engines.quiz.attempt_policy import AttemptOutcome, AttemptPolicy, LaunchGate
from history_engine.engines.quiz.clock import Clock
from history_engine.engines.quiz.models import PersistedQuizState, SessionPhase
from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.engines.quiz.question_bank import QuestionBank
from history_engine.engines.quiz.quiz_session import QuizSession
from history_engine.engines.quiz.unlock_policy import UnlockPolicy
from history_engine.kernel.events.event_store import EventStore
from history_engine.kernel.models.event_log import EventType
from history_engine.logging_config import get_logger

if TYPE_CHECKING:
    from history_engine.pedagogy.curriculum_engine import CurriculumEngine

logger = get_logger(__name__)


class LaunchRefusedError(Exception):
    """The launch gate is closed for this learner and event."""

    def __init__(self, gate: LaunchGate):
        super().__init__(gate.reason.value)
        self.gate = gate


class NoQuizAvailableError(LookupError):
    """The event has no questions configured."""


class NoQuizInProgressError(LookupError):
    """There is no persisted session to act on."""


@dataclass
class QuizTurn:
    """Session state after one service call."""

    event_id: str
    attempt_number: int
    session: QuizSession
    outcome: Optional[AttemptOutcome] = None
    next_event_id: Optional[str] = None


class QuizService:
    """Quiz lifecycle for one learner and event per call."""

    def __init__(
        self,
        store: ProgressStore,
        policy: AttemptPolicy,
        bank: QuestionBank,
        clock: Optional[Clock] = None,
        unlock: Optional[UnlockPolicy] = None,
        curriculum: Optional["CurriculumEngine"] = None,
        event_store: Optional[EventStore] = None,
        default_time_per_question_ms: int = QuizSession.DEFAULT_TIME_PER_QUESTION_MS,
        advance_delay_ms: int = QuizSession.ADVANCE_DELAY_MS,
    ):
        self.store = store
        self.policy = policy
        self.bank = bank
        self.clock = clock or policy.clock
        self.unlock = unlock or UnlockPolicy(passing_score=policy.grader.passing_score)
        self.curriculum = curriculum
        self.event_store = event_store
        self.default_time_per_question_ms = default_time_per_question_ms
        self.advance_delay_ms = advance_delay_ms

    async def _audit(self, event_type: EventType, user_id: str, event_id: str, payload: dict) -> None:
        if self.event_store:
            await self.event_store.log(
                event_type=event_type,
                user_id=user_id,
                history_event_id=event_id,
                payload=payload,
            )

    def _restore(self, state: PersistedQuizState) -> QuizSession:
        return QuizSession.restore(state, clock=self.clock, advance_delay_ms=self.advance_delay_ms)

    async def _load(self, user_id: str, event_id: str) -> Tuple[PersistedQuizState, QuizSession]:
        state = await self.store.get_quiz_state(user_id, event_id, for_update=True)
        if state is None:
            raise NoQuizInProgressError(f"no quiz in progress for {event_id}")
        return state, self._restore(state)

    async def _settle(
        self,
        user_id: str,
        event_id: str,
        attempt_number: int,
        session: QuizSession,
    ) -> QuizTurn:
        """Persist a running session, or record and clear a completed one."""
        turn = QuizTurn(event_id=event_id, attempt_number=attempt_number, session=session)
        if session.phase != SessionPhase.COMPLETED:
            await self.store.save_quiz_state(user_id, session.snapshot(event_id, attempt_number))
            return turn

        summary = session.summary
        outcome = await self.policy.apply_outcome(user_id, event_id, summary)
        await self.store.clear_quiz_state(user_id, event_id)
        turn.attempt_number = outcome.attempt.attempt_number
        turn.outcome = outcome
        turn.next_event_id = self._next_event(event_id, outcome.grade.score)

        await self._audit(
            EventType.QUIZ_ATTEMPT_RECORDED,
            user_id,
            event_id,
            {
                "attempt_number": outcome.attempt.attempt_number,
                "score": outcome.grade.score,
                "stars": outcome.grade.stars,
                "correct": summary.correct,
                "total": summary.total,
                "duration_ms": summary.duration_ms,
                "forced": summary.forced,
            },
        )
        await self._audit(
            EventType.QUIZ_PASSED if outcome.passed else EventType.QUIZ_FAILED,
            user_id,
            event_id,
            {"score": outcome.grade.score, "failed_attempts": outcome.progress.failed_attempts},
        )
        if outcome.locked:
            await self._audit(
                EventType.EVENT_LOCKED,
                user_id,
                event_id,
                {"locked_until": outcome.locked_until},
            )
        return turn

    def _next_event(self, event_id: str, score: int) -> Optional[str]:
        if self.curriculum is None:
            return None
        phase_id = self.curriculum.phase_of(event_id)
        if phase_id is None:
            return None
        return self.unlock.auto_advance_target(
            event_id, score, self.curriculum.ordered_event_ids(phase_id)
        )

    async def start(self, user_id: str, event_id: str) -> QuizTurn:
        """
        Launch a new attempt, or resume the one already running.

        Raises:
            LaunchRefusedError: the launch gate is closed
            NoQuizAvailableError: the event has no questions
        """
        async with self.store.transaction(user_id, event_id):
            state = await self.store.get_quiz_state(user_id, event_id, for_update=True)
            if state is not None:
                session = self._restore(state)
                session.tick()
                if not session.is_terminal:
                    await self.store.save_quiz_state(user_id, session.snapshot(event_id, state.attempt_number))
                    return QuizTurn(event_id=event_id, attempt_number=state.attempt_number, session=session)
                # Expired while away: the timeout attempt is recorded before a new launch
                await self._settle(user_id, event_id, state.attempt_number, session)

            gate = await self.policy.launch_gate(user_id, event_id)
            questions = self.bank.pick_for_launch(event_id) if gate.allowed else []
            if questions:
                session = QuizSession(
                    questions,
                    clock=self.clock,
                    default_time_per_question_ms=self.default_time_per_question_ms,
                    advance_delay_ms=self.advance_delay_ms,
                )
                await self.store.save_quiz_state(user_id, session.snapshot(event_id, gate.next_attempt_number))

        # Raised after the commit so a timeout settled above is kept
        if not gate.allowed:
            raise LaunchRefusedError(gate)
        if not questions:
            raise NoQuizAvailableError(f"no quiz configured for {event_id}")

        logger.info(
            "Quiz started",
            extra={
                "user_id": user_id,
                "event_id": event_id,
                "attempt_number": gate.next_attempt_number,
                "question_count": len(questions),
            },
        )
        await self._audit(
            EventType.QUIZ_STARTED,
            user_id,
            event_id,
            {
                "attempt_number": gate.next_attempt_number,
                "question_ids": [q.id for q in questions],
                "total_duration_ms": session.total_duration_ms,
            },
        )
        return QuizTurn(event_id=event_id, attempt_number=gate.next_attempt_number, session=session)

    async def answer(
        self, user_id: str, event_id: str, option_index: int, question_id: Optional[str] = None
    ) -> QuizTurn:
        """
        Answer the current question.

        With ``question_id`` the answer only applies while that question is
        still current; a repeated click that arrives after the auto-advance
        is ignored instead of landing on the next question.
        """
        async with self.store.transaction(user_id, event_id):
            state, session = await self._load(user_id, event_id)
            session.tick()
            session.select_answer(option_index, question_id=question_id)
            return await self._settle(user_id, event_id, state.attempt_number, session)

    async def proceed(self, user_id: str, event_id: str) -> QuizTurn:
        """The learner's "continue" action."""
        async with self.store.transaction(user_id, event_id):
            state, session = await self._load(user_id, event_id)
            session.tick()
            session.proceed()
            return await self._settle(user_id, event_id, state.attempt_number, session)

    async def tick(self, user_id: str, event_id: str) -> QuizTurn:
        async with self.store.transaction(user_id, event_id):
            state, session = await self._load(user_id, event_id)
            session.tick()
            return await self._settle(user_id, event_id, state.attempt_number, session)

    async def complete(self, user_id: str, event_id: str) -> QuizTurn:
        """Force completion; the timeout path for clients that track the countdown themselves."""
        async with self.store.transaction(user_id, event_id):
            state, session = await self._load(user_id, event_id)
            session.tick()
            session.force_complete()
            return await self._settle(user_id, event_id, state.attempt_number, session)

    async def abandon(self, user_id: str, event_id: str) -> Optional[QuizTurn]:
        """
        Drop the running session. No attempt is recorded.

        A session that completes on the closing tick (the countdown ran out,
        or the final auto-advance fell due) is settled instead and the
        recorded turn is returned.
        """
        async with self.store.transaction(user_id, event_id):
            state, session = await self._load(user_id, event_id)
            if session.tick() == SessionPhase.COMPLETED:
                return await self._settle(user_id, event_id, state.attempt_number, session)
            session.abandon()
            await self.store.clear_quiz_state(user_id, event_id)
        logger.info(
            "Quiz abandoned",
            extra={"user_id": user_id, "event_id": event_id, "attempt_number": state.attempt_number},
        )
        await self._audit(
            EventType.QUIZ_ABANDONED,
            user_id,
            event_id,
            {
                "attempt_number": state.attempt_number,
                "answered": sum(1 for a in session.answers if a.selected_index is not None),
            },
        )
        return None
