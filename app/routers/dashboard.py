"""Dashboard, usage tracking, assessment and study endpoints."""
import logging
from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.db.database import get_db
from app.db import store
from app.routers.quiz import serialize_attempt
from app.services.assessment import generate_assessment, get_assessment_client
from app.services.quiz_engine import GAME_CONFIG, GameMode, study_table
from app.services.stats import compute_accuracy, compute_current_streak, compute_personal_bests
from app.constants import ASSESSMENT_ATTEMPT_LIMIT, DAILY_USAGE_WINDOW, RECENT_ATTEMPTS_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["dashboard"])


class UsageUpdate(BaseModel):
    """Request body for reporting time spent in the app."""
    date: date
    time_spent: float = Field(..., ge=0, le=86400, description="Seconds to add")


def get_today() -> date:
    """Current calendar date (UTC). Overridable in tests."""
    return datetime.utcnow().date()


def serialize_usage(record) -> dict:
    return {
        "date": record.date,
        "time_spent": record.time_spent,
        "streak": record.streak
    }


@router.post("/usage")
async def record_usage(
    update: UsageUpdate,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Add time spent on a day.

    Returns:
        200 with the accumulated record, or 201 when the day is new
    """
    try:
        record, created = store.record_usage(db, update.date, update.time_spent)
    except SQLAlchemyError as e:
        logger.error(
            f"Error updating usage stats: {e}",
            exc_info=True,
            extra={"usage_date": update.date.isoformat()}
        )
        raise HTTPException(status_code=500, detail="Error updating usage stats")

    response.status_code = 201 if created else 200
    return serialize_usage(record)


@router.get("/dashboard")
async def get_dashboard(
    db: Session = Depends(get_db),
    today: date = Depends(get_today)
):
    """
    Dashboard summary.

    Returns:
    - recent_attempts: 5 newest attempts
    - performance_stats: personal best per game mode
    - accuracy: overall score ratio
    - daily_usage: last 7 usage days, oldest first
    - current_streak: 0 if the latest usage day is before yesterday
    """
    try:
        attempts = store.find_attempts(db)
        usage = store.find_recent_usage(db, DAILY_USAGE_WINDOW)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching dashboard data: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching dashboard data")

    bests = compute_personal_bests(attempts)

    return {
        "recent_attempts": [serialize_attempt(a) for a in attempts[:RECENT_ATTEMPTS_LIMIT]],
        "performance_stats": {
            mode: {
                "score": best.score,
                "time_taken": best.time_taken,
                "total_questions": best.total_questions
            }
            for mode, best in bests.items()
        },
        "accuracy": compute_accuracy(attempts),
        "daily_usage": [serialize_usage(u) for u in reversed(usage)],
        "current_streak": compute_current_streak(usage, today)
    }


@router.get("/assessment")
async def get_assessment(
    db: Session = Depends(get_db),
    client=Depends(get_assessment_client)
):
    """Coach feedback on the last 30 attempts."""
    try:
        attempts = store.find_attempts(db, limit=ASSESSMENT_ATTEMPT_LIMIT)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching attempts for assessment: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating assessment")

    return {"assessment": await generate_assessment(attempts, client)}


@router.get("/study/{game_mode}")
async def get_study_table(game_mode: GameMode):
    """Reference table for study mode."""
    return {
        "game_mode": game_mode.value,
        "name": GAME_CONFIG[game_mode].name,
        "rows": study_table(game_mode)
    }
