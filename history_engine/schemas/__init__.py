"""
Pydantic schemas for API request/response validation.
"""

from history_engine.schemas.common import ErrorResponse, HealthResponse
from history_engine.schemas.curriculum import TimelineEventSchema, TimelineResponse
from history_engine.schemas.progress import LaunchGateResponse, ProgressResponse, ReadingUpdateRequest
from history_engine.schemas.purchase import (
    PaymentResultRequest,
    PendingPurchaseRequest,
    PendingPurchaseResponse,
    PurchaseOutcomeResponse,
)
from history_engine.schemas.quiz import QuizAnswerRequest, QuizResultSchema, QuizStateResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "TimelineEventSchema",
    "TimelineResponse",
    "LaunchGateResponse",
    "ProgressResponse",
    "ReadingUpdateRequest",
    "PaymentResultRequest",
    "PendingPurchaseRequest",
    "PendingPurchaseResponse",
    "PurchaseOutcomeResponse",
    "QuizAnswerRequest",
    "QuizResultSchema",
    "QuizStateResponse",
]
