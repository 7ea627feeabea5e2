"""Quiz session engine: batch generation, answer scoring and session lifecycle."""
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple
from app.config import settings
from app.constants import DECOY_COUNT, DECOY_MAX_OFFSET, MAX_OPTION_ATTEMPTS
from app.services.ticker import DisplayTicker

logger = logging.getLogger(__name__)

INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


class GameMode(str, Enum):
    """Arithmetic practice categories."""
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    SQUARES = "squares"
    CUBES = "cubes"


class QuizMode(str, Enum):
    """How answers are entered."""
    TYPED = "typed"  # free numeric input
    MCQ = "mcq"      # pick one of four options


class SessionState(str, Enum):
    """Lifecycle states of a quiz session."""
    GENERATING = "generating"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class GameConfig:
    name: str
    batch_size: int
    prompt_space: int  # number of distinct prompts the generator can produce


GAME_CONFIG: Dict[GameMode, GameConfig] = {
    GameMode.ADDITION: GameConfig("Addition", 25, 90 * 90),
    GameMode.SUBTRACTION: GameConfig("Subtraction", 25, sum(a - 19 for a in range(20, 100))),
    GameMode.MULTIPLICATION: GameConfig("Multiplication", 50, 19 * 20),
    GameMode.SQUARES: GameConfig("Squares", 30, 30),
    GameMode.CUBES: GameConfig("Cubes", 15, 15),
}


class QuizEngineError(Exception):
    """Base class for quiz engine failures."""


class BatchGenerationError(QuizEngineError):
    """Raised when a unique question batch cannot be produced."""


class OptionGenerationError(QuizEngineError):
    """Raised when multiple-choice decoys cannot be collected."""


class InvalidAnswerError(QuizEngineError):
    """Raised for empty or non-numeric answers. The turn is not consumed."""


class SessionClosedError(QuizEngineError):
    """Raised when answering a session that is not in progress."""


@dataclass(frozen=True)
class Question:
    prompt: str
    answer: int


@dataclass(frozen=True)
class WrongAnswerEntry:
    question: str
    incorrect_answer: str
    correct_answer: str


@dataclass(frozen=True)
class ReviewItem:
    question: str
    user_answer: str
    correct_answer: str
    is_correct: bool


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of one completed session."""
    game_mode: GameMode
    score: int
    total_questions: int
    time_taken: float
    wrong_answers: Tuple[WrongAnswerEntry, ...]
    started_at: datetime
    ended_at: datetime


@dataclass
class SubmissionOutcome:
    is_correct: bool
    is_final: bool
    correct_answer: int
    user_answer: int
    result: Optional[AttemptResult] = None


def generate_question(game_mode: GameMode, rng=None) -> Question:
    """
    Draw one random question for a game mode.

    Ranges (inclusive):
    - addition: a, b in [10, 99]
    - subtraction: a in [20, 99], b in [10, a - 10]
    - multiplication: a in [2, 20], b in [1, 20]
    - squares: n in [1, 30]
    - cubes: n in [1, 15]
    """
    rng = rng or random
    game_mode = GameMode(game_mode)

    if game_mode == GameMode.ADDITION:
        a, b = rng.randint(10, 99), rng.randint(10, 99)
        return Question(f"{a} + {b}", a + b)
    if game_mode == GameMode.SUBTRACTION:
        a = rng.randint(20, 99)
        b = rng.randint(10, a - 10)
        return Question(f"{a} - {b}", a - b)
    if game_mode == GameMode.MULTIPLICATION:
        a, b = rng.randint(2, 20), rng.randint(1, 20)
        return Question(f"{a} × {b}", a * b)
    if game_mode == GameMode.SQUARES:
        n = rng.randint(1, 30)
        return Question(f"{n}²", n * n)
    # CUBES
    n = rng.randint(1, 15)
    return Question(f"{n}³", n * n * n)


def generate_batch(
    game_mode: GameMode,
    size: Optional[int] = None,
    rng=None,
    max_attempts: Optional[int] = None
) -> List[Question]:
    """
    Generate an ordered batch of questions with unique prompts.

    Duplicates (by prompt string) are rejected and redrawn. The number of
    draws is capped so an exhausted value space fails instead of looping.

    Args:
        game_mode: Game mode to generate for
        size: Batch size (default: the mode's configured size)
        rng: Random source exposing ``randint`` (default: ``random`` module)
        max_attempts: Cap on total draws (default: settings.MAX_GENERATION_ATTEMPTS)

    Returns:
        List of Question objects in generation order

    Raises:
        BatchGenerationError: If the batch cannot reach the requested size
    """
    game_mode = GameMode(game_mode)
    config = GAME_CONFIG[game_mode]
    target = config.batch_size if size is None else size
    max_attempts = max_attempts or settings.MAX_GENERATION_ATTEMPTS

    if target < 1:
        raise BatchGenerationError(f"Batch size must be positive, got {target}")
    if target > config.prompt_space:
        raise BatchGenerationError(
            f"{game_mode.value} has only {config.prompt_space} distinct questions, "
            f"cannot build a batch of {target}"
        )

    questions: List[Question] = []
    seen = set()
    for _ in range(max_attempts):
        question = generate_question(game_mode, rng)
        if question.prompt in seen:
            continue
        seen.add(question.prompt)
        questions.append(question)
        if len(questions) == target:
            return questions

    raise BatchGenerationError(
        f"Gave up after {max_attempts} draws with {len(questions)}/{target} "
        f"unique {game_mode.value} questions"
    )


def generate_options(
    answer: int,
    rng=None,
    count: int = DECOY_COUNT,
    max_offset: int = DECOY_MAX_OFFSET,
    max_attempts: int = MAX_OPTION_ATTEMPTS
) -> List[int]:
    """
    Build shuffled multiple-choice options: ``count`` decoys plus the answer.

    Decoys are ``answer +/- offset`` with offset in [1, max_offset]; each must
    be positive, differ from the answer and from the other decoys.

    Raises:
        OptionGenerationError: If not enough valid decoys are found
    """
    rng = rng or random
    decoys: List[int] = []

    for _ in range(max_attempts):
        offset = rng.randint(1, max_offset)
        decoy = answer + offset if rng.random() > 0.5 else answer - offset
        if decoy > 0 and decoy != answer and decoy not in decoys:
            decoys.append(decoy)
        if len(decoys) == count:
            options = decoys + [answer]
            rng.shuffle(options)
            return options

    raise OptionGenerationError(
        f"Found only {len(decoys)}/{count} decoys for answer {answer}"
    )


def parse_answer(raw_input) -> int:
    """
    Parse a submitted answer as an integer.

    Raises:
        InvalidAnswerError: For empty, non-numeric or non-integer input
    """
    if isinstance(raw_input, bool):
        raise InvalidAnswerError("Answer must be a number")
    if isinstance(raw_input, int):
        return raw_input
    if raw_input is None:
        raise InvalidAnswerError("Answer cannot be empty")
    if not isinstance(raw_input, str):
        raise InvalidAnswerError(f"Answer must be a whole number, got {raw_input!r}")

    text = raw_input.strip()
    if not text:
        raise InvalidAnswerError("Answer cannot be empty")
    if not INTEGER_PATTERN.fullmatch(text):
        raise InvalidAnswerError(f"Answer must be a whole number, got {text!r}")
    return int(text)


def study_table(game_mode: GameMode) -> List[str]:
    """
    Reference rows for study mode, e.g. ``"7 × 8 = 56"``.

    Addition and subtraction have no table and return an empty list.
    """
    game_mode = GameMode(game_mode)
    if game_mode == GameMode.MULTIPLICATION:
        return [f"{i} × {j} = {i * j}" for i in range(1, 21) for j in range(1, 21)]
    if game_mode == GameMode.SQUARES:
        return [f"{i}² = {i * i}" for i in range(1, 31)]
    if game_mode == GameMode.CUBES:
        return [f"{i}³ = {i * i * i}" for i in range(1, 16)]
    return []


SessionHook = Callable[["QuizSession"], None]


class QuizSession:
    """
    One quiz run: ``GENERATING -> IN_PROGRESS(i) -> COMPLETED``.

    ``submit_answer`` is the only mutating operation while in progress.
    ``abandon`` ends the session without producing a result. End hooks run
    exactly once, whichever way the session ends.

    Timing uses two captured instants from ``clock``; the optional display
    ticker only drives ``display_seconds``.
    """

    def __init__(
        self,
        game_mode: GameMode,
        quiz_mode: QuizMode = QuizMode.TYPED,
        batch_size: Optional[int] = None,
        rng=None,
        clock: Callable[[], datetime] = datetime.utcnow,
        tick_interval: Optional[float] = None,
        session_id: Optional[str] = None
    ):
        self.game_mode = GameMode(game_mode)
        self.quiz_mode = QuizMode(quiz_mode)
        self.session_id = session_id
        self.batch_size = batch_size
        self.state = SessionState.GENERATING
        self.questions: List[Question] = []
        self.current_index = 0
        self.score = 0
        self.review: List[ReviewItem] = []
        self.wrong_answers: List[WrongAnswerEntry] = []
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.result: Optional[AttemptResult] = None

        self._rng = rng or random
        self._clock = clock
        self._options: Dict[int, List[int]] = {}
        self._ticker = DisplayTicker(tick_interval) if tick_interval else None
        self._on_start: List[SessionHook] = []
        self._on_end: List[SessionHook] = []

    def on_start(self, hook: SessionHook) -> None:
        self._on_start.append(hook)

    def on_end(self, hook: SessionHook) -> None:
        self._on_end.append(hook)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.IN_PROGRESS

    @property
    def current_question(self) -> Optional[Question]:
        if not self.is_active:
            return None
        return self.questions[self.current_index]

    @property
    def current_options(self) -> List[int]:
        """Options for the live question in MCQ mode; empty in typed mode."""
        if self.quiz_mode != QuizMode.MCQ or not self.is_active:
            return []
        if self.current_index not in self._options:
            self._options[self.current_index] = generate_options(
                self.current_question.answer, self._rng
            )
        return self._options[self.current_index]

    @property
    def display_seconds(self) -> float:
        """Display-only elapsed seconds from the ticker (0 without one)."""
        return self._ticker.seconds if self._ticker else 0.0

    def start(self) -> "QuizSession":
        """Generate the batch and move to ``IN_PROGRESS(0)``."""
        if self.state != SessionState.GENERATING:
            raise SessionClosedError(f"Session already {self.state.value}")

        self.started_at = self._clock()
        self.questions = generate_batch(self.game_mode, self.batch_size, self._rng)
        self.current_index = 0
        self.state = SessionState.IN_PROGRESS

        if self._ticker:
            self._ticker.start()
        for hook in self._on_start:
            hook(self)

        logger.debug(
            f"Session started with {self.total_questions} {self.game_mode.value} questions",
            extra={"session_id": self.session_id, "game_mode": self.game_mode.value}
        )
        return self

    def submit_answer(self, raw_input) -> SubmissionOutcome:
        """
        Score an answer for the current question and advance.

        Args:
            raw_input: Integer or numeric text

        Returns:
            SubmissionOutcome; ``result`` is set on the final answer

        Raises:
            SessionClosedError: If the session is not in progress
            InvalidAnswerError: If the input is not an integer (no state change)
        """
        if not self.is_active:
            raise SessionClosedError(f"Session is {self.state.value}")

        user_answer = parse_answer(raw_input)
        question = self.questions[self.current_index]
        is_correct = user_answer == question.answer

        self.review.append(ReviewItem(
            question=question.prompt,
            user_answer=str(user_answer),
            correct_answer=str(question.answer),
            is_correct=is_correct
        ))
        if is_correct:
            self.score += 1
        else:
            self.wrong_answers.append(WrongAnswerEntry(
                question=question.prompt,
                incorrect_answer=str(user_answer),
                correct_answer=str(question.answer)
            ))

        outcome = SubmissionOutcome(
            is_correct=is_correct,
            is_final=False,
            correct_answer=question.answer,
            user_answer=user_answer
        )

        if self.current_index + 1 < self.total_questions:
            self.current_index += 1
            return outcome

        self.ended_at = self._clock()
        self.result = AttemptResult(
            game_mode=self.game_mode,
            score=self.score,
            total_questions=self.total_questions,
            time_taken=(self.ended_at - self.started_at).total_seconds(),
            wrong_answers=tuple(self.wrong_answers),
            started_at=self.started_at,
            ended_at=self.ended_at
        )
        self._finish(SessionState.COMPLETED)

        outcome.is_final = True
        outcome.result = self.result
        return outcome

    def abandon(self) -> None:
        """Discard the session mid-batch. No result is produced."""
        if self.state in (SessionState.COMPLETED, SessionState.ABANDONED):
            return
        self._finish(SessionState.ABANDONED)

    def _finish(self, state: SessionState) -> None:
        self.state = state
        try:
            for hook in self._on_end:
                hook(self)
        finally:
            if self._ticker:
                self._ticker.stop()
        logger.debug(
            f"Session {state.value} with score {self.score}/{self.total_questions}",
            extra={"session_id": self.session_id, "game_mode": self.game_mode.value}
        )
