"""Dashboard statistics: personal bests, accuracy, streaks and repeated mistakes.

Every function here is pure. Inputs are any objects exposing the attribute
names used below, so ORM rows and engine results work alike.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Sequence
from app.constants import WRONG_ANSWER_ATTEMPT_LIMIT


@dataclass
class PersonalBestEntry:
    """Best recorded attempt for one game mode."""
    game_mode: str
    score: int
    time_taken: float
    total_questions: int


def _mode_key(game_mode) -> str:
    return getattr(game_mode, "value", game_mode)


def compute_personal_bests(attempts: Iterable) -> Dict[str, PersonalBestEntry]:
    """
    Fold attempts into the best entry per game mode.

    Replacement rules, in order:
    1. No entry for the mode yet: insert.
    2. Strictly higher score: replace the whole entry.
    3. Equal score and strictly lower time: replace only ``time_taken``;
       ``total_questions`` stays from the earlier winner.

    Args:
        attempts: Objects with game_mode, score, time_taken, total_questions

    Returns:
        Mapping of game mode value to PersonalBestEntry
    """
    bests: Dict[str, PersonalBestEntry] = {}

    for attempt in attempts:
        mode = _mode_key(attempt.game_mode)
        best = bests.get(mode)

        if best is None or attempt.score > best.score:
            bests[mode] = PersonalBestEntry(
                game_mode=mode,
                score=attempt.score,
                time_taken=attempt.time_taken,
                total_questions=attempt.total_questions
            )
        elif attempt.score == best.score and attempt.time_taken < best.time_taken:
            best.time_taken = attempt.time_taken

    return bests


def is_new_personal_best(attempt, bests: Dict[str, PersonalBestEntry]) -> bool:
    """
    Check whether an attempt beats the recorded best for its mode.

    A zero score never counts as a record.
    """
    if attempt.score <= 0:
        return False
    best = bests.get(_mode_key(attempt.game_mode))
    if best is None:
        return True
    if attempt.score > best.score:
        return True
    return attempt.score == best.score and attempt.time_taken < best.time_taken


def compute_accuracy(attempts: Iterable) -> float:
    """
    Overall accuracy as total score over total questions.

    Returns:
        Float between 0.0 and 1.0; 0.0 when there are no questions
    """
    total_score = 0
    total_questions = 0
    for attempt in attempts:
        total_score += attempt.score
        total_questions += attempt.total_questions

    if total_questions == 0:
        return 0.0
    return total_score / total_questions


def _as_date(value) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def compute_current_streak(usage_history: Iterable, today: date) -> int:
    """
    Current day streak from usage records.

    The latest record's stored streak counts only if that record is dated
    today or yesterday; otherwise the streak has lapsed and 0 is returned.
    Stored records are never modified.
    """
    records = list(usage_history)
    if not records:
        return 0

    latest = max(records, key=lambda record: _as_date(record.date))
    latest_date = _as_date(latest.date)

    if latest_date in (today, today - timedelta(days=1)):
        return latest.streak
    return 0


def next_streak(previous_day_record) -> int:
    """Streak for a new day given the record of the day before (or None)."""
    if previous_day_record is None:
        return 1
    return previous_day_record.streak + 1


def dedupe_recent_mistakes(attempts: Sequence, limit: int = WRONG_ANSWER_ATTEMPT_LIMIT) -> List:
    """
    Distinct mistakes from the most recent attempts.

    Args:
        attempts: Attempts ordered newest first, each with ``wrong_answers``
        limit: Number of attempts with at least one mistake to scan

    Returns:
        Wrong-answer entries in first-seen order, one per question prompt.
        The entry kept for a prompt comes from the most recent attempt.
    """
    with_mistakes = [attempt for attempt in attempts if attempt.wrong_answers][:limit]

    seen = set()
    mistakes = []
    for attempt in with_mistakes:
        for wrong in attempt.wrong_answers:
            if wrong.question in seen:
                continue
            seen.add(wrong.question)
            mistakes.append(wrong)

    return mistakes

