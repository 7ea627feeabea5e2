"""Quiz attempt, history and live session endpoints."""
import logging
import random
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.db.database import get_db
from app.db.models import QuizAttempt
from app.db import store
from app.services.quiz_engine import (
    GameMode,
    QuizMode,
    QuizSession,
    InvalidAnswerError,
    SessionClosedError,
    QuizEngineError
)
from app.services.session_registry import SessionRegistry, SessionNotFoundError, get_registry
from app.services.stats import compute_personal_bests, dedupe_recent_mistakes, is_new_personal_best
from app.constants import WRONG_ANSWER_ATTEMPT_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["quiz"])


def to_utc(value: datetime) -> datetime:
    """Convert to naive UTC for storage. Naive input is taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utc_isoformat(value: datetime) -> str:
    return value.isoformat() + "Z"


class WrongAnswerIn(BaseModel):
    """A mistake within a submitted attempt."""
    question: str = Field(..., min_length=1, max_length=50)
    incorrect_answer: str = Field(..., max_length=50)
    correct_answer: str = Field(..., min_length=1, max_length=50)


class ReviewEntryIn(BaseModel):
    """One line of the answer transcript."""
    question: str = Field(..., min_length=1, max_length=50)
    user_answer: Optional[str] = Field(None, max_length=50)
    correct_answer: str = Field(..., min_length=1, max_length=50)
    is_correct: bool


class AttemptSubmission(BaseModel):
    """Request body for recording a completed quiz."""
    game_mode: GameMode
    total_questions: int = Field(..., gt=0, le=1000)
    score: int = Field(..., ge=0)
    time_taken: float = Field(..., ge=0, description="Elapsed seconds")
    wrong_answers: List[WrongAnswerIn] = []
    started_at: datetime
    ended_at: datetime
    review_data: Optional[List[ReviewEntryIn]] = None

    @validator('score')
    def validate_score(cls, v, values):
        """Score cannot exceed the number of questions."""
        total = values.get('total_questions')
        if total is not None and v > total:
            raise ValueError('score cannot exceed total_questions')
        return v

    @validator('started_at')
    def validate_started_at(cls, v):
        return to_utc(v)

    @validator('ended_at')
    def validate_ended_at(cls, v, values):
        """A quiz cannot end before it started."""
        v = to_utc(v)
        started = values.get('started_at')
        if started is not None and v < started:
            raise ValueError('ended_at cannot be before started_at')
        return v


class StartSessionRequest(BaseModel):
    """Request body for starting a live quiz session."""
    game_mode: GameMode
    quiz_mode: QuizMode = QuizMode.TYPED


class AnswerSubmission(BaseModel):
    """Request body for answering the live question."""
    answer: Union[int, float, str, None] = None


def serialize_wrong_answer(wrong) -> Dict:
    return {
        "question": wrong.question,
        "incorrect_answer": wrong.incorrect_answer,
        "correct_answer": wrong.correct_answer
    }


def serialize_attempt(attempt: QuizAttempt) -> Dict:
    """Format a stored attempt for API responses."""
    return {
        "id": attempt.id,
        "game_mode": attempt.game_mode,
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "time_taken": attempt.time_taken,
        "wrong_answers": [serialize_wrong_answer(w) for w in attempt.wrong_answers],
        "started_at": utc_isoformat(attempt.started_at),
        "ended_at": utc_isoformat(attempt.ended_at),
        "created_at": utc_isoformat(attempt.created_at)
    }


def session_payload(session: QuizSession) -> Dict:
    """Public view of a live session. Answers are never included."""
    question = session.current_question
    return {
        "session_id": session.session_id,
        "game_mode": session.game_mode.value,
        "quiz_mode": session.quiz_mode.value,
        "state": session.state.value,
        "question_number": session.current_index + 1 if question else None,
        "total_questions": session.total_questions,
        "prompt": question.prompt if question else None,
        "options": session.current_options,
        "score": session.score,
        "display_seconds": session.display_seconds
    }


@router.post("/quiz", status_code=201)
async def record_attempt(
    submission: AttemptSubmission,
    db: Session = Depends(get_db)
):
    """
    Record a completed quiz attempt and its optional review transcript.

    Returns:
        The stored attempt with its generated id
    """
    try:
        attempt = store.save_attempt(db, submission, submission.review_data)
    except SQLAlchemyError as e:
        logger.error(f"Error saving quiz attempt: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error saving quiz attempt")

    return serialize_attempt(attempt)


@router.get("/history")
async def get_history(db: Session = Depends(get_db)):
    """All attempts, newest first."""
    try:
        attempts = store.find_attempts(db)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching quiz history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching quiz history")

    return [serialize_attempt(a) for a in attempts]


@router.get("/wrong-answers")
async def get_wrong_answers(db: Session = Depends(get_db)):
    """Distinct mistakes from the 20 most recent attempts that had any."""
    try:
        attempts = store.find_attempts_with_mistakes(db, WRONG_ANSWER_ATTEMPT_LIMIT)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching wrong answers: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching wrong answers")

    return [serialize_wrong_answer(w) for w in dedupe_recent_mistakes(attempts)]


@router.get("/wrong-answers/random")
async def get_random_wrong_answer(db: Session = Depends(get_db)):
    """One recent mistake picked at random for a quick recall prompt, or null."""
    try:
        attempts = store.find_attempts_with_mistakes(db, WRONG_ANSWER_ATTEMPT_LIMIT)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching wrong answers: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching wrong answers")

    mistakes = dedupe_recent_mistakes(attempts)
    if not mistakes:
        return {"mistake": None}
    return {"mistake": serialize_wrong_answer(random.choice(mistakes))}


@router.get("/attempts/{attempt_id}/review")
async def get_attempt_review(attempt_id: int, db: Session = Depends(get_db)):
    """Answer transcript of one attempt."""
    review = store.find_review(db, attempt_id)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")

    return {
        "attempt_id": attempt_id,
        "questions": [
            {
                "question": e.question,
                "user_answer": e.user_answer,
                "correct_answer": e.correct_answer,
                "is_correct": e.is_correct
            }
            for e in review.entries
        ]
    }


@router.post("/session/start")
async def start_session(
    request: StartSessionRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """
    Start a server-driven quiz session.

    Returns:
        Session state with the first question prompt (and options in MCQ mode)
    """
    try:
        session = registry.start(request.game_mode, request.quiz_mode)
    except QuizEngineError as e:
        logger.error(f"Could not start session: {e}", extra={"game_mode": request.game_mode.value})
        raise HTTPException(status_code=500, detail=str(e))

    return session_payload(session)


@router.get("/session/{session_id}")
async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry)
):
    """Current question and progress of a live session."""
    try:
        session = registry.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    return session_payload(session)


@router.post("/session/{session_id}/answer")
async def answer_session(
    session_id: str,
    submission: AnswerSubmission,
    registry: SessionRegistry = Depends(get_registry),
    db: Session = Depends(get_db)
):
    """
    Answer the live question.

    Malformed answers return 400 and leave the question live. The final
    answer persists the attempt with its transcript and reports whether it
    set a new personal best.
    """
    try:
        session = registry.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    try:
        outcome = session.submit_answer(submission.answer)
    except InvalidAnswerError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    response = {
        "is_correct": outcome.is_correct,
        "correct_answer": outcome.correct_answer,
        "user_answer": outcome.user_answer,
        "is_final": outcome.is_final
    }

    if not outcome.is_final:
        return {**response, "session": session_payload(session)}

    try:
        bests = compute_personal_bests(store.find_attempts(db))
        attempt = store.save_attempt(db, outcome.result, session.review)
    except SQLAlchemyError as e:
        logger.error(
            f"Error saving completed session: {e}",
            exc_info=True,
            extra={"session_id": session_id}
        )
        raise HTTPException(status_code=500, detail="Error saving quiz attempt")

    return {
        **response,
        "result": serialize_attempt(attempt),
        "is_new_personal_best": is_new_personal_best(outcome.result, bests)
    }


@router.delete("/session/{session_id}", status_code=204)
async def abandon_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry)
):
    """Abandon a live session without recording anything."""
    try:
        registry.abandon(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
