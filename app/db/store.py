"""Persistence operations for attempts, reviews and daily usage."""
import logging
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple
from sqlalchemy import desc
from sqlalchemy.orm import Session, selectinload
from app.db.models import QuizAttempt, WrongAnswer, QuizReview, ReviewEntry, UsageStat
from app.services.stats import next_streak

logger = logging.getLogger(__name__)


def _mode_value(game_mode) -> str:
    return getattr(game_mode, "value", game_mode)


def save_attempt(db: Session, attempt, review: Optional[Sequence] = None) -> QuizAttempt:
    """
    Persist a completed attempt and, optionally, its review transcript.

    Both are written in a single transaction, so a review is never stored
    without its attempt and vice versa.

    Args:
        db: Database session
        attempt: Object with game_mode, score, total_questions, time_taken,
                 wrong_answers, started_at, ended_at
        review: Optional sequence of items with question, user_answer,
                correct_answer, is_correct

    Returns:
        The stored QuizAttempt with its generated id
    """
    record = QuizAttempt(
        game_mode=_mode_value(attempt.game_mode),
        score=attempt.score,
        total_questions=attempt.total_questions,
        time_taken=attempt.time_taken,
        started_at=attempt.started_at,
        ended_at=attempt.ended_at,
    )
    record.wrong_answers = [
        WrongAnswer(
            position=i,
            question=wrong.question,
            incorrect_answer=str(wrong.incorrect_answer),
            correct_answer=str(wrong.correct_answer),
        )
        for i, wrong in enumerate(attempt.wrong_answers)
    ]
    if review:
        record.review = QuizReview(entries=[
            ReviewEntry(
                position=i,
                question=item.question,
                user_answer=None if item.user_answer is None else str(item.user_answer),
                correct_answer=str(item.correct_answer),
                is_correct=bool(item.is_correct),
            )
            for i, item in enumerate(review)
        ])

    db.add(record)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)

    logger.info(
        f"Saved {record.game_mode} attempt: {record.score}/{record.total_questions} "
        f"in {record.time_taken:.1f}s",
        extra={"attempt_id": record.id, "game_mode": record.game_mode}
    )
    return record


def find_attempts(db: Session, limit: Optional[int] = None) -> List[QuizAttempt]:
    """Attempts ordered newest first, with wrong answers loaded."""
    query = db.query(QuizAttempt).options(
        selectinload(QuizAttempt.wrong_answers)
    ).order_by(desc(QuizAttempt.created_at), desc(QuizAttempt.id))

    if limit is not None:
        query = query.limit(limit)
    return query.all()


def find_attempts_with_mistakes(db: Session, limit: int) -> List[QuizAttempt]:
    """The ``limit`` newest attempts that have at least one wrong answer."""
    return db.query(QuizAttempt).options(
        selectinload(QuizAttempt.wrong_answers)
    ).filter(
        QuizAttempt.wrong_answers.any()
    ).order_by(desc(QuizAttempt.created_at), desc(QuizAttempt.id)).limit(limit).all()


def find_review(db: Session, attempt_id: int) -> Optional[QuizReview]:
    return db.query(QuizReview).options(
        selectinload(QuizReview.entries)
    ).filter(QuizReview.attempt_id == attempt_id).first()


def find_usage_record(db: Session, usage_date) -> Optional[UsageStat]:
    """Usage record for a calendar date (``date`` or ``YYYY-MM-DD``)."""
    key = usage_date.isoformat() if isinstance(usage_date, date) else usage_date
    return db.query(UsageStat).filter(UsageStat.date == key).first()


def find_recent_usage(db: Session, limit: int = 7) -> List[UsageStat]:
    """The ``limit`` latest usage records, newest first."""
    return db.query(UsageStat).order_by(desc(UsageStat.date)).limit(limit).all()


def record_usage(db: Session, usage_date: date, time_spent: float) -> Tuple[UsageStat, bool]:
    """
    Add time spent on a calendar date, creating the record if needed.

    A new record's streak is one more than the previous day's record, or 1
    when there is none. If later consecutive days already exist (a late or
    out-of-order write filling a gap), their streaks are re-chained so that
    every stored day satisfies ``streak(D) == streak(D - 1) + 1``.

    Args:
        db: Database session
        usage_date: Calendar date of the usage
        time_spent: Seconds to add

    Returns:
        Tuple of (UsageStat, created) where created is False on accumulation
    """
    try:
        existing = find_usage_record(db, usage_date)
        if existing:
            existing.time_spent += time_spent
            db.commit()
            db.refresh(existing)
            return existing, False

        previous = find_usage_record(db, usage_date - timedelta(days=1))
        record = UsageStat(
            date=usage_date.isoformat(),
            time_spent=time_spent,
            streak=next_streak(previous),
        )
        db.add(record)
        db.flush()

        chain = record
        following_date = usage_date + timedelta(days=1)
        following = find_usage_record(db, following_date)
        while following is not None:
            following.streak = next_streak(chain)
            chain = following
            following_date += timedelta(days=1)
            following = find_usage_record(db, following_date)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info(
        f"Started usage day with streak {record.streak}",
        extra={"usage_date": record.date}
    )
    return record, True
