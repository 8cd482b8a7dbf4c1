"""
Quiz Engine - reading gate, timed quiz sessions, grading and attempt lockout.

Per history event:
- Reading: the quiz opens once 80% of the dossier has been read
- Session: 5 questions plus a random bonus of 0-5, one countdown for all
- Grading: score 0-100, stars from a tier table, pass at 70
- Attempts: 2 failures allowed (plus purchased credits), then a 12 hour lock
- Sequencing: an event unlocks once the previous one in its era is passed
"""

from history_engine.engines.quiz.attempt_policy import (
    AttemptOutcome,
    AttemptPolicy,
    LaunchBlockReason,
    LaunchGate,
)
from history_engine.engines.quiz.clock import Clock, ManualClock, SystemClock
from history_engine.engines.quiz.grader import Grade, Grader
from history_engine.engines.quiz.models import (
    AttemptRecord,
    PaymentResult,
    PaymentStatus,
    PendingPurchase,
    ProgressRecord,
    ProgressUpdate,
    QuizQuestion,
    QuizSummary,
    SessionPhase,
)
from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.engines.quiz.purchase_bridge import PurchaseBridge, PurchaseDisposition, PurchaseOutcome
from history_engine.engines.quiz.question_bank import QuestionBank
from history_engine.engines.quiz.quiz_service import (
    LaunchRefusedError,
    NoQuizAvailableError,
    NoQuizInProgressError,
    QuizService,
    QuizTurn,
)
from history_engine.engines.quiz.quiz_session import QuizSession
from history_engine.engines.quiz.reading_tracker import ReadingTracker
from history_engine.engines.quiz.unlock_policy import UnlockPolicy

__all__ = [
    "AttemptOutcome",
    "AttemptPolicy",
    "LaunchBlockReason",
    "LaunchGate",
    "Clock",
    "ManualClock",
    "SystemClock",
    "Grade",
    "Grader",
    "AttemptRecord",
    "PaymentResult",
    "PaymentStatus",
    "PendingPurchase",
    "ProgressRecord",
    "ProgressUpdate",
    "QuizQuestion",
    "QuizSummary",
    "SessionPhase",
    "ProgressStore",
    "PurchaseBridge",
    "PurchaseDisposition",
    "PurchaseOutcome",
    "QuestionBank",
    "LaunchRefusedError",
    "NoQuizAvailableError",
    "NoQuizInProgressError",
    "QuizService",
    "QuizTurn",
    "QuizSession",
    "ReadingTracker",
    "UnlockPolicy",
]
