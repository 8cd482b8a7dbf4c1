"""
Quiz endpoints - start, answer, continue, tick, complete and abandon.

A session lives between requests as a persisted snapshot. Completing it
(last question, countdown expiry or an explicit complete) records the graded
attempt and returns the result in the same response.
"""

from fastapi import APIRouter, HTTPException, status

from history_engine.api.deps import Quiz
from history_engine.api.v1.progress import gate_to_schema
from history_engine.engines.quiz import (
    LaunchRefusedError,
    NoQuizAvailableError,
    NoQuizInProgressError,
    QuizTurn,
    SessionPhase,
)
from history_engine.schemas.common import ErrorResponse
from history_engine.schemas.quiz import (
    AnswerFeedback,
    QuizAnswerRequest,
    QuizMediaSchema,
    QuizQuestionSchema,
    QuizResultSchema,
    QuizStateResponse,
)

router = APIRouter()

_ERRORS = {
    404: {"model": ErrorResponse, "description": "No quiz configured or in progress"},
    409: {"description": "Launch gate closed"},
}


def turn_to_schema(turn: QuizTurn, max_stars: int) -> QuizStateResponse:
    session = turn.session
    question = session.current_question
    feedback = None
    if session.phase in (SessionPhase.AWAITING_ADVANCE, SessionPhase.REVEALED):
        answer = session.answers[session.current_index]
        feedback = AnswerFeedback(
            question_id=answer.question_id,
            selected_index=answer.selected_index,
            correct_index=answer.correct_index,
            is_correct=answer.is_correct,
            explanation=answer.explanation,
        )

    result = None
    if turn.outcome is not None:
        outcome = turn.outcome
        summary = session.summary
        result = QuizResultSchema(
            attempt_number=outcome.attempt.attempt_number,
            score=outcome.grade.score,
            stars=outcome.grade.stars,
            max_stars=max_stars,
            passed=outcome.passed,
            correct=summary.correct,
            total=summary.total,
            duration_ms=summary.duration_ms,
            forced=summary.forced,
            locked=outcome.locked,
            locked_until=outcome.locked_until,
            failed_attempts=outcome.progress.failed_attempts,
            best_score=outcome.progress.best_score,
            next_event_id=turn.next_event_id,
        )

    return QuizStateResponse(
        event_id=turn.event_id,
        attempt_number=turn.attempt_number,
        phase=session.phase.value,
        current_index=session.current_index,
        total_questions=len(session.questions),
        time_left_ms=session.time_left_ms,
        expires_at=session.expires_at,
        question=QuizQuestionSchema(
            id=question.id,
            prompt=question.prompt,
            options=list(question.options),
            media=QuizMediaSchema(**question.media.model_dump()) if question.media else None,
            time_per_question_ms=question.time_per_question_ms,
        )
        if question is not None
        else None,
        feedback=feedback,
        result=result,
    )


def _not_in_progress(e: NoQuizInProgressError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{event_id}/quiz/start", response_model=QuizStateResponse, responses=_ERRORS)
async def start_quiz(user_id: str, event_id: str, quiz: Quiz):
    """Launch a quiz attempt, or resume the one already running."""
    try:
        turn = await quiz.start(user_id, event_id)
    except LaunchRefusedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=gate_to_schema(event_id, e.gate).model_dump(mode="json"),
        )
    except NoQuizAvailableError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return turn_to_schema(turn, quiz.policy.grader.max_stars)


@router.post("/{event_id}/quiz/answer", response_model=QuizStateResponse, responses=_ERRORS)
async def answer_question(user_id: str, event_id: str, data: QuizAnswerRequest, quiz: Quiz):
    """Select an option for the current question. Repeated or late answers are ignored."""
    try:
        turn = await quiz.answer(user_id, event_id, data.option_index, question_id=data.question_id)
    except NoQuizInProgressError as e:
        raise _not_in_progress(e)
    return turn_to_schema(turn, quiz.policy.grader.max_stars)


@router.post("/{event_id}/quiz/continue", response_model=QuizStateResponse, responses=_ERRORS)
async def continue_quiz(user_id: str, event_id: str, quiz: Quiz):
    """Move past the answered question."""
    try:
        turn = await quiz.proceed(user_id, event_id)
    except NoQuizInProgressError as e:
        raise _not_in_progress(e)
    return turn_to_schema(turn, quiz.policy.grader.max_stars)


@router.post("/{event_id}/quiz/tick", response_model=QuizStateResponse, responses=_ERRORS)
async def tick_quiz(user_id: str, event_id: str, quiz: Quiz):
    """Poll the countdown and any pending auto-advance."""
    try:
        turn = await quiz.tick(user_id, event_id)
    except NoQuizInProgressError as e:
        raise _not_in_progress(e)
    return turn_to_schema(turn, quiz.policy.grader.max_stars)


@router.post("/{event_id}/quiz/complete", response_model=QuizStateResponse, responses=_ERRORS)
async def complete_quiz(user_id: str, event_id: str, quiz: Quiz):
    """End the session now; unanswered questions count as incorrect."""
    try:
        turn = await quiz.complete(user_id, event_id)
    except NoQuizInProgressError as e:
        raise _not_in_progress(e)
    return turn_to_schema(turn, quiz.policy.grader.max_stars)


@router.delete("/{event_id}/quiz", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def abandon_quiz(user_id: str, event_id: str, quiz: Quiz):
    """
    Close the quiz without recording an attempt.

    A quiz whose countdown already ran out is recorded as a timeout instead;
    the attempt shows up in the event's progress.
    """
    try:
        await quiz.abandon(user_id, event_id)
    except NoQuizInProgressError as e:
        raise _not_in_progress(e)
