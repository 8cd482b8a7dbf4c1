"""
FastAPI dependencies for database sessions and the per-request engine graph.

Every engine built here shares the request's AsyncSession, so progress
writes and their audit entries commit (or roll back) together.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from history_engine.config import get_settings
from history_engine.database import get_db
from history_engine.engines.quiz import (
    AttemptPolicy,
    Clock,
    Grader,
    ProgressStore,
    PurchaseBridge,
    QuestionBank,
    QuizService,
    ReadingTracker,
    SystemClock,
    UnlockPolicy,
)
from history_engine.kernel.events.event_store import EventStore
from history_engine.kernel.storage.backends import SqlBackend
from history_engine.pedagogy.curriculum_engine import CurriculumEngine

DbSession = Annotated[AsyncSession, Depends(get_db)]

_system_clock = SystemClock()


def get_clock() -> Clock:
    """Time source; tests override this dependency with a ManualClock."""
    return _system_clock


ClockDep = Annotated[Clock, Depends(get_clock)]


@lru_cache
def get_question_bank() -> QuestionBank:
    settings = get_settings()
    return QuestionBank(
        settings.quiz_bank_path,
        base_count=settings.quiz_base_question_count,
        bonus_max=settings.quiz_bonus_question_max,
    )


@lru_cache
def get_curriculum() -> CurriculumEngine:
    return CurriculumEngine(get_settings().curriculum_path)


Bank = Annotated[QuestionBank, Depends(get_question_bank)]
Curriculum = Annotated[CurriculumEngine, Depends(get_curriculum)]


def get_event_store(db: DbSession) -> EventStore:
    return EventStore(db)


Events = Annotated[EventStore, Depends(get_event_store)]


def get_progress_store(db: DbSession, clock: ClockDep) -> ProgressStore:
    settings = get_settings()
    return ProgressStore(
        SqlBackend(db),
        clock=clock,
        read_gate_ratio=settings.read_gate_ratio,
        reset_budget_on_lock=settings.reset_budget_on_lock,
    )


Store = Annotated[ProgressStore, Depends(get_progress_store)]


def get_grader() -> Grader:
    settings = get_settings()
    return Grader(star_tiers=settings.star_tiers, passing_score=settings.passing_score)


def get_unlock_policy() -> UnlockPolicy:
    return UnlockPolicy(passing_score=get_settings().passing_score)


Unlock = Annotated[UnlockPolicy, Depends(get_unlock_policy)]


def get_attempt_policy(
    store: Store,
    grader: Annotated[Grader, Depends(get_grader)],
) -> AttemptPolicy:
    settings = get_settings()
    return AttemptPolicy(
        store,
        grader,
        base_allowance=settings.base_attempt_allowance,
        lockout_hours=settings.lockout_hours,
        read_gate_ratio=settings.read_gate_ratio,
        attempt_pack_enabled=settings.attempt_pack_enabled,
    )


Policy = Annotated[AttemptPolicy, Depends(get_attempt_policy)]


def get_reading_tracker(store: Store, events: Events) -> ReadingTracker:
    return ReadingTracker(store, epsilon=get_settings().read_ratio_epsilon, event_store=events)


Tracker = Annotated[ReadingTracker, Depends(get_reading_tracker)]


def get_quiz_service(
    store: Store,
    policy: Policy,
    bank: Bank,
    unlock: Unlock,
    curriculum: Curriculum,
    events: Events,
) -> QuizService:
    settings = get_settings()
    return QuizService(
        store,
        policy,
        bank,
        unlock=unlock,
        curriculum=curriculum,
        event_store=events,
        default_time_per_question_ms=settings.default_time_per_question_ms,
        advance_delay_ms=settings.correct_advance_delay_ms,
    )


Quiz = Annotated[QuizService, Depends(get_quiz_service)]


def get_purchase_bridge(db: DbSession, policy: Policy, events: Events) -> PurchaseBridge:
    settings = get_settings()
    return PurchaseBridge(
        SqlBackend(db),
        policy,
        product_id=settings.attempt_pack_product_id,
        default_quantity=settings.attempt_pack_default_quantity,
        event_store=events,
    )


Purchases = Annotated[PurchaseBridge, Depends(get_purchase_bridge)]
