"""
Pytest fixtures for History Progress Engine tests.
"""

import json
import random
from datetime import timedelta
from pathlib import Path
from typing import List

import pytest

from history_engine.engines.quiz.attempt_policy import AttemptPolicy
from history_engine.engines.quiz.clock import ManualClock
from history_engine.engines.quiz.grader import Grader
from history_engine.engines.quiz.models import QuizAnswerRecord, QuizQuestion, QuizSummary
from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.engines.quiz.question_bank import QuestionBank
from history_engine.kernel.storage.backends import MemoryBackend

USER_ID = "learner-1"
EVENT_ID = "marathon"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend, clock: ManualClock) -> ProgressStore:
    return ProgressStore(backend, clock=clock)


@pytest.fixture
def grader() -> Grader:
    return Grader()


@pytest.fixture
def policy(store: ProgressStore, grader: Grader, clock: ManualClock) -> AttemptPolicy:
    return AttemptPolicy(store, grader, clock=clock)


def make_question(qid: str, event_id: str = EVENT_ID, answer_index: int = 0, **kwargs) -> QuizQuestion:
    return QuizQuestion(
        id=qid,
        event_id=event_id,
        prompt=f"Question {qid}?",
        options=["A", "B", "C", "D"],
        answer_index=answer_index,
        explanation=f"Because {qid}.",
        **kwargs,
    )


def make_summary(correct: int, total: int, clock: ManualClock, forced: bool = False) -> QuizSummary:
    """Summary with ``correct`` right answers out of ``total``."""
    answers: List[QuizAnswerRecord] = [
        QuizAnswerRecord(
            question_id=f"q{i}",
            selected_index=0 if i < correct else 1,
            correct_index=0,
            is_correct=i < correct,
        )
        for i in range(total)
    ]
    return QuizSummary(
        correct=correct,
        total=total,
        answers=answers,
        duration_ms=1000 * total,
        started_at=clock.now() - timedelta(seconds=total),
        forced=forced,
    )


def write_bank(path: Path, event_id: str, count: int) -> Path:
    path.write_text(
        json.dumps(
            {
                event_id: [
                    {
                        "id": f"{event_id}-q{i}",
                        "prompt": f"Question {i}?",
                        "options": ["right", "wrong", "also wrong"],
                        "answerIndex": 0,
                        "explanation": f"Explanation {i}.",
                    }
                    for i in range(count)
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def bank_file(tmp_path: Path) -> Path:
    return write_bank(tmp_path / "quiz_bank.json", EVENT_ID, 5)


@pytest.fixture
def bank(bank_file: Path) -> QuestionBank:
    # No bonus questions so every launch draws exactly five
    return QuestionBank(bank_file, rng=random.Random(7), base_count=5, bonus_max=0)
