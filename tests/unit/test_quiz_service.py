"""Unit tests for QuizService: launch, persisted transitions and recording."""

import asyncio
import json

import pytest

from history_engine.engines.quiz.attempt_policy import LaunchBlockReason
from history_engine.engines.quiz.models import SessionPhase
from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.engines.quiz.quiz_service import (
    LaunchRefusedError,
    NoQuizAvailableError,
    NoQuizInProgressError,
    QuizService,
)
from history_engine.kernel.storage.backends import MemoryBackend
from history_engine.pedagogy.curriculum_engine import CurriculumEngine
from tests.conftest import EVENT_ID, USER_ID


@pytest.fixture
def curriculum(tmp_path) -> CurriculumEngine:
    path = tmp_path / "curriculum.json"
    path.write_text(
        json.dumps(
            {
                "phases": [{"id": "antiquity", "title": "Antiquity"}],
                "events": [
                    {"id": "alexander", "era_id": "antiquity", "year": -323, "title": "Alexander"},
                    {"id": EVENT_ID, "era_id": "antiquity", "year": -490, "month": 9, "title": "Marathon"},
                ],
            }
        ),
        encoding="utf-8",
    )
    return CurriculumEngine(path)


@pytest.fixture
def service(store, policy, bank, clock, curriculum) -> QuizService:
    return QuizService(store, policy, bank, clock=clock, curriculum=curriculum)


async def _read(store, event_id=EVENT_ID):
    await store.update(USER_ID, event_id, {"read_ratio": 0.9})


async def _answer_all(service: QuizService, option: int):
    turn = None
    for _ in range(5):
        await service.answer(USER_ID, EVENT_ID, option)
        turn = await service.proceed(USER_ID, EVENT_ID)
    return turn


class TestStart:
    @pytest.mark.asyncio
    async def test_unread_event_refused(self, service: QuizService):
        with pytest.raises(LaunchRefusedError) as exc_info:
            await service.start(USER_ID, EVENT_ID)
        assert exc_info.value.gate.reason == LaunchBlockReason.READ_INSUFFICIENT

    @pytest.mark.asyncio
    async def test_event_without_questions(self, service: QuizService, store):
        await _read(store, "alexander")
        with pytest.raises(NoQuizAvailableError):
            await service.start(USER_ID, "alexander")

    @pytest.mark.asyncio
    async def test_start_persists_session(self, service: QuizService, store):
        await _read(store)
        turn = await service.start(USER_ID, EVENT_ID)
        assert turn.attempt_number == 1
        assert len(turn.session.questions) == 5
        assert turn.session.phase == SessionPhase.IN_PROGRESS
        state = await store.get_quiz_state(USER_ID, EVENT_ID)
        assert [q.id for q in state.questions] == [q.id for q in turn.session.questions]

    @pytest.mark.asyncio
    async def test_second_start_resumes(self, service: QuizService, store):
        await _read(store)
        first = await service.start(USER_ID, EVENT_ID)
        await service.answer(USER_ID, EVENT_ID, 0)
        again = await service.start(USER_ID, EVENT_ID)
        assert [q.id for q in again.session.questions] == [q.id for q in first.session.questions]
        assert again.session.answers[0].selected_index == 0


class TestTransitions:
    @pytest.mark.asyncio
    async def test_no_session_to_act_on(self, service: QuizService):
        with pytest.raises(NoQuizInProgressError):
            await service.answer(USER_ID, EVENT_ID, 0)

    @pytest.mark.asyncio
    async def test_passing_run_records_and_advances(self, service: QuizService, store):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        turn = await _answer_all(service, 0)

        assert turn.session.phase == SessionPhase.COMPLETED
        assert turn.outcome.passed is True
        assert turn.outcome.grade.score == 100
        assert turn.outcome.grade.stars == 12
        assert turn.next_event_id == "alexander"
        assert await store.get_quiz_state(USER_ID, EVENT_ID) is None
        assert (await store.get(USER_ID, EVENT_ID)).best_score == 100

    @pytest.mark.asyncio
    async def test_failing_run_does_not_advance(self, service: QuizService, store):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        turn = await _answer_all(service, 1)
        assert turn.outcome.passed is False
        assert turn.next_event_id is None
        assert turn.outcome.progress.failed_attempts == 1

    @pytest.mark.asyncio
    async def test_correct_answer_advances_on_tick(self, service: QuizService, store, clock):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        turn = await service.answer(USER_ID, EVENT_ID, 0)
        assert turn.session.phase == SessionPhase.AWAITING_ADVANCE
        clock.advance(milliseconds=800)
        turn = await service.tick(USER_ID, EVENT_ID)
        assert turn.session.current_index == 1

    @pytest.mark.asyncio
    async def test_timeout_records_forced_attempt(self, service: QuizService, store, clock):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        await service.answer(USER_ID, EVENT_ID, 0)
        clock.advance(seconds=125)
        turn = await service.tick(USER_ID, EVENT_ID)
        assert turn.outcome is not None
        assert turn.session.summary.forced is True
        assert turn.outcome.grade.score == 20

    @pytest.mark.asyncio
    async def test_complete_forces_result(self, service: QuizService, store):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        turn = await service.complete(USER_ID, EVENT_ID)
        assert turn.outcome.grade.score == 0
        assert turn.session.summary.forced is True

    @pytest.mark.asyncio
    async def test_expired_session_recorded_before_relaunch(self, service: QuizService, store, clock):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        clock.advance(hours=1)
        turn = await service.start(USER_ID, EVENT_ID)
        assert turn.attempt_number == 2
        record = await store.get(USER_ID, EVENT_ID)
        assert len(record.attempts) == 1
        assert record.failed_attempts == 1

    @pytest.mark.asyncio
    async def test_abandon_records_nothing(self, service: QuizService, store):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        await service.answer(USER_ID, EVENT_ID, 1)
        await service.abandon(USER_ID, EVENT_ID)
        assert await store.get_quiz_state(USER_ID, EVENT_ID) is None
        assert (await store.get(USER_ID, EVENT_ID)).attempts == []
        with pytest.raises(NoQuizInProgressError):
            await service.abandon(USER_ID, EVENT_ID)

    @pytest.mark.asyncio
    async def test_abandon_after_countdown_records_timeout(self, service: QuizService, store, clock):
        await store.update(USER_ID, EVENT_ID, {"read_ratio": 0.9, "failed_attempts": 1})
        await service.start(USER_ID, EVENT_ID)
        clock.advance(hours=1)

        turn = await service.abandon(USER_ID, EVENT_ID)

        assert turn is not None
        assert turn.session.summary.forced is True
        assert turn.outcome.locked is True
        record = await store.get(USER_ID, EVENT_ID)
        assert len(record.attempts) == 1
        assert record.is_locked(clock.now())
        assert await store.get_quiz_state(USER_ID, EVENT_ID) is None

    @pytest.mark.asyncio
    async def test_abandon_before_countdown_returns_nothing(self, service: QuizService, store):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)
        assert await service.abandon(USER_ID, EVENT_ID) is None


class TestLateAnswers:
    @pytest.mark.asyncio
    async def test_repeat_click_after_auto_advance_is_ignored(self, service: QuizService, store, clock):
        await _read(store)
        turn = await service.start(USER_ID, EVENT_ID)
        first_id = turn.session.current_question.id
        await service.answer(USER_ID, EVENT_ID, 0, question_id=first_id)
        clock.advance(milliseconds=900)

        turn = await service.answer(USER_ID, EVENT_ID, 2, question_id=first_id)

        assert turn.session.current_index == 1
        assert turn.session.phase == SessionPhase.IN_PROGRESS
        assert turn.session.answers[1].selected_index is None
        assert turn.session.answers[0].is_correct is True

    @pytest.mark.asyncio
    async def test_answer_for_current_question_applies(self, service: QuizService, store):
        await _read(store)
        turn = await service.start(USER_ID, EVENT_ID)
        turn = await service.answer(USER_ID, EVENT_ID, 1, question_id=turn.session.current_question.id)
        assert turn.session.phase == SessionPhase.REVEALED
        assert turn.session.answers[0].selected_index == 1


class CommitTrackingBackend(MemoryBackend):
    """Records, per commit, whether the record lock was still held."""

    def __init__(self):
        super().__init__()
        self.store = None
        self.commits = []

    async def commit(self) -> None:
        self.commits.append(self.store.key_lock(USER_ID, EVENT_ID).locked())


class TestTransactions:
    @pytest.fixture
    def tracked(self, clock, policy, bank, curriculum):
        backend = CommitTrackingBackend()
        store = ProgressStore(backend, clock=clock)
        backend.store = store
        policy.store = store
        return backend, store, QuizService(store, policy, bank, clock=clock, curriculum=curriculum)

    @pytest.mark.asyncio
    async def test_each_transition_commits_under_the_record_lock(self, tracked):
        backend, store, service = tracked
        await store.update(USER_ID, EVENT_ID, {"read_ratio": 0.9})
        await service.start(USER_ID, EVENT_ID)
        await service.answer(USER_ID, EVENT_ID, 0)
        await service.complete(USER_ID, EVENT_ID)
        assert backend.commits == [True, True, True]

    @pytest.mark.asyncio
    async def test_refused_launch_still_commits_settled_timeout(self, tracked, clock):
        backend, store, service = tracked
        await store.update(USER_ID, EVENT_ID, {"read_ratio": 0.9, "failed_attempts": 1})
        await service.start(USER_ID, EVENT_ID)
        clock.advance(hours=1)

        with pytest.raises(LaunchRefusedError) as exc_info:
            await service.start(USER_ID, EVENT_ID)

        assert exc_info.value.gate.reason == LaunchBlockReason.TIME_LOCKED_PURCHASABLE
        assert backend.commits == [True, True]
        assert len((await store.get(USER_ID, EVENT_ID)).attempts) == 1

    @pytest.mark.asyncio
    async def test_concurrent_completions_record_one_attempt(self, service: QuizService, store):
        await _read(store)
        await service.start(USER_ID, EVENT_ID)

        results = await asyncio.gather(
            service.complete(USER_ID, EVENT_ID),
            service.complete(USER_ID, EVENT_ID),
            return_exceptions=True,
        )

        recorded = [r for r in results if not isinstance(r, Exception)]
        assert len(recorded) == 1
        assert isinstance([r for r in results if isinstance(r, Exception)][0], NoQuizInProgressError)
        assert len((await store.get(USER_ID, EVENT_ID)).attempts) == 1
