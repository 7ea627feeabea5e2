"""SQLAlchemy models for the Speed Math application."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Float, Boolean, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from app.db.database import Base


class QuizAttempt(Base):
    """One completed quiz session."""
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_mode = Column(Text, nullable=False)  # e.g. "multiplication"
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    time_taken = Column(Float, nullable=False)  # seconds
    started_at = Column(DateTime, nullable=False)  # naive UTC
    ended_at = Column(DateTime, nullable=False)  # naive UTC
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= total_questions", name="ck_attempt_score"),
        Index('idx_attempt_created', 'created_at'),
    )

    # Relationships
    wrong_answers = relationship(
        "WrongAnswer",
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="WrongAnswer.position",
    )
    review = relationship("QuizReview", back_populates="attempt", uselist=False, cascade="all, delete-orphan")


class WrongAnswer(Base):
    """A question answered incorrectly within an attempt."""
    __tablename__ = "wrong_answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)  # order within the attempt
    question = Column(Text, nullable=False)  # e.g. "7 × 8"
    incorrect_answer = Column(Text, nullable=False)
    correct_answer = Column(Text, nullable=False)

    attempt = relationship("QuizAttempt", back_populates="wrong_answers")


class QuizReview(Base):
    """Full answer transcript for one attempt."""
    __tablename__ = "quiz_reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id"), nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    attempt = relationship("QuizAttempt", back_populates="review")
    entries = relationship(
        "ReviewEntry",
        back_populates="review",
        cascade="all, delete-orphan",
        order_by="ReviewEntry.position",
    )


class ReviewEntry(Base):
    """Single question/answer line of a review transcript."""
    __tablename__ = "review_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(Integer, ForeignKey("quiz_reviews.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    question = Column(Text, nullable=False)
    user_answer = Column(Text, nullable=True)
    correct_answer = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)

    review = relationship("QuizReview", back_populates="entries")


class UsageStat(Base):
    """Time spent in the app on one calendar day."""
    __tablename__ = "usage_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(10), unique=True, nullable=False)  # YYYY-MM-DD
    time_spent = Column(Float, nullable=False, default=0.0)  # seconds
    streak = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("streak >= 1", name="ck_usage_streak"),
    )
