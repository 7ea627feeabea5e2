"""Unit tests for the quiz session engine."""
import random
import re
import pytest
from app.services.quiz_engine import (
    GAME_CONFIG,
    GameMode,
    QuizMode,
    QuizSession,
    SessionState,
    BatchGenerationError,
    InvalidAnswerError,
    OptionGenerationError,
    SessionClosedError,
    generate_batch,
    generate_options,
    generate_question,
    parse_answer,
    study_table
)


class TestBatchGeneration:
    """Tests for question batch generation."""

    @pytest.mark.parametrize("mode", list(GameMode))
    def test_batch_has_configured_size_and_unique_prompts(self, mode):
        """Every batch matches the mode's size with no repeated prompt."""
        for seed in range(5):
            batch = generate_batch(mode, rng=random.Random(seed))
            prompts = [q.prompt for q in batch]

            assert len(batch) == GAME_CONFIG[mode].batch_size
            assert len(set(prompts)) == len(prompts)

    def test_default_sizes(self):
        """Batch sizes per game mode."""
        assert GAME_CONFIG[GameMode.ADDITION].batch_size == 25
        assert GAME_CONFIG[GameMode.SUBTRACTION].batch_size == 25
        assert GAME_CONFIG[GameMode.MULTIPLICATION].batch_size == 50
        assert GAME_CONFIG[GameMode.SQUARES].batch_size == 30
        assert GAME_CONFIG[GameMode.CUBES].batch_size == 15

    def test_squares_batch_covers_whole_range(self):
        """Squares batch uses every n in 1..30 exactly once."""
        batch = generate_batch(GameMode.SQUARES, rng=random.Random(7))
        assert sorted(q.answer for q in batch) == [n * n for n in range(1, 31)]

    def test_size_larger_than_value_space_fails_fast(self):
        """Requesting more cubes than exist raises instead of looping."""
        with pytest.raises(BatchGenerationError):
            generate_batch(GameMode.CUBES, size=16)

    def test_exhausted_attempts_raise(self):
        """A tiny draw cap cannot complete a full batch."""
        with pytest.raises(BatchGenerationError):
            generate_batch(GameMode.SQUARES, rng=random.Random(1), max_attempts=10)

    def test_non_positive_size_rejected(self):
        with pytest.raises(BatchGenerationError):
            generate_batch(GameMode.ADDITION, size=0)

    def test_accepts_mode_value_string(self):
        batch = generate_batch("cubes", rng=random.Random(3))
        assert len(batch) == 15


class TestQuestionRules:
    """Tests for per-mode prompt shapes and value ranges."""

    def test_subtraction_bounds(self):
        """b is in [10, a - 10], so the result is at least 10."""
        rng = random.Random(42)
        for _ in range(2000):
            question = generate_question(GameMode.SUBTRACTION, rng)
            a, b = map(int, question.prompt.split(" - "))

            assert 20 <= a <= 99
            assert 10 <= b <= a - 10
            assert question.answer == a - b
            assert question.answer >= 10

    def test_addition_bounds(self):
        rng = random.Random(1)
        for _ in range(500):
            question = generate_question(GameMode.ADDITION, rng)
            a, b = map(int, question.prompt.split(" + "))
            assert 10 <= a <= 99 and 10 <= b <= 99
            assert question.answer == a + b

    def test_multiplication_bounds(self):
        rng = random.Random(2)
        for _ in range(500):
            question = generate_question(GameMode.MULTIPLICATION, rng)
            a, b = map(int, question.prompt.split(" × "))
            assert 2 <= a <= 20 and 1 <= b <= 20
            assert question.answer == a * b

    def test_power_prompts(self):
        rng = random.Random(3)
        for _ in range(200):
            square = generate_question(GameMode.SQUARES, rng)
            n = int(re.match(r"(\d+)²$", square.prompt).group(1))
            assert 1 <= n <= 30 and square.answer == n ** 2

            cube = generate_question(GameMode.CUBES, rng)
            n = int(re.match(r"(\d+)³$", cube.prompt).group(1))
            assert 1 <= n <= 15 and cube.answer == n ** 3


class TestMultipleChoiceOptions:
    """Tests for decoy option generation."""

    def test_four_distinct_options_including_answer(self):
        rng = random.Random(5)
        for answer in (1, 2, 12, 144, 3375):
            options = generate_options(answer, rng)

            assert len(options) == 4
            assert len(set(options)) == 4
            assert answer in options

    def test_decoys_positive_and_within_offset(self):
        rng = random.Random(9)
        for _ in range(200):
            options = generate_options(1, rng)
            decoys = [o for o in options if o != 1]

            assert all(d > 0 for d in decoys)
            assert all(abs(d - 1) <= 20 for d in decoys)

    def test_impossible_decoys_raise(self):
        """Offsets of 1 around answer 1 only allow the decoy 2."""
        with pytest.raises(OptionGenerationError):
            generate_options(1, random.Random(0), max_offset=1, max_attempts=50)


class TestParseAnswer:
    """Tests for answer input parsing."""

    def test_parses_numeric_text(self):
        assert parse_answer("42") == 42
        assert parse_answer("  7 ") == 7
        assert parse_answer("-3") == -3

    def test_passes_integers_through(self):
        assert parse_answer(81) == 81

    @pytest.mark.parametrize("raw", ["", "   ", None, "abc", "4.5", "12abc", True, "1_000", "\u0661\u0662", 12.5, 12.0])
    def test_rejects_malformed_input(self, raw):
        with pytest.raises(InvalidAnswerError):
            parse_answer(raw)


class TestQuizSession:
    """Tests for the session state machine."""

    def _session(self, clock, mode=GameMode.ADDITION, **kwargs):
        return QuizSession(mode, clock=clock, rng=random.Random(11), **kwargs)

    def test_starts_in_generating_then_in_progress(self, clock):
        session = self._session(clock)
        assert session.state == SessionState.GENERATING
        assert session.current_question is None

        session.start()

        assert session.state == SessionState.IN_PROGRESS
        assert session.current_index == 0
        assert session.total_questions == 25

    def test_all_correct_addition_quiz(self, clock):
        """25 correct answers give a perfect result, final only on the last."""
        session = self._session(clock).start()

        for i in range(25):
            clock.advance(2)
            outcome = session.submit_answer(str(session.current_question.answer))

            assert outcome.is_correct is True
            assert outcome.is_final is (i == 24)

        result = outcome.result
        assert result.score == 25
        assert result.total_questions == 25
        assert result.wrong_answers == ()
        assert result.time_taken == 50.0
        assert result.game_mode == GameMode.ADDITION
        assert session.state == SessionState.COMPLETED

    def test_wrong_answers_are_recorded(self, clock):
        session = self._session(clock, mode=GameMode.CUBES).start()
        first = session.current_question

        outcome = session.submit_answer(first.answer + 1)

        assert outcome.is_correct is False
        assert outcome.correct_answer == first.answer
        assert session.wrong_answers[0].question == first.prompt
        assert session.wrong_answers[0].incorrect_answer == str(first.answer + 1)
        assert session.wrong_answers[0].correct_answer == str(first.answer)
        assert session.review[0].is_correct is False
        assert session.current_index == 1

    def test_review_transcript_covers_every_answer(self, clock):
        session = self._session(clock, mode=GameMode.CUBES).start()
        for i in range(15):
            answer = session.current_question.answer
            session.submit_answer(answer if i % 2 == 0 else answer + 1)

        assert len(session.review) == 15
        assert session.result.score == 8
        assert len(session.result.wrong_answers) == 7

    def test_malformed_input_does_not_consume_turn(self, clock):
        session = self._session(clock).start()
        question = session.current_question

        with pytest.raises(InvalidAnswerError):
            session.submit_answer("")
        with pytest.raises(InvalidAnswerError):
            session.submit_answer("twelve")

        assert session.current_index == 0
        assert session.current_question == question
        assert session.review == []

    def test_answering_completed_session_raises(self, clock):
        session = self._session(clock, mode=GameMode.CUBES).start()
        while session.is_active:
            session.submit_answer(0)

        with pytest.raises(SessionClosedError):
            session.submit_answer(1)

    def test_elapsed_time_uses_captured_instants(self, clock):
        session = self._session(clock, mode=GameMode.CUBES, tick_interval=60).start()
        clock.advance(37.5)
        while session.is_active:
            session.submit_answer(session.current_question.answer)

        assert session.result.time_taken == 37.5
        assert session.result.ended_at - session.result.started_at == clock.now - session.started_at
        assert session.display_seconds == 0

    def test_abandon_discards_session(self, clock):
        ended = []
        session = self._session(clock)
        session.on_end(lambda s: ended.append(s.state))
        session.start()
        session.submit_answer(1)

        session.abandon()
        session.abandon()

        assert session.state == SessionState.ABANDONED
        assert session.result is None
        assert ended == [SessionState.ABANDONED]
        with pytest.raises(SessionClosedError):
            session.submit_answer(1)

    def test_hooks_run_once(self, clock):
        calls = []
        session = self._session(clock, mode=GameMode.CUBES)
        session.on_start(lambda s: calls.append("start"))
        session.on_end(lambda s: calls.append("end"))
        session.start()
        while session.is_active:
            session.submit_answer(0)
        session.abandon()

        assert calls == ["start", "end"]

    def test_cannot_start_twice(self, clock):
        session = self._session(clock).start()
        with pytest.raises(SessionClosedError):
            session.start()

    def test_mcq_options_stable_per_question(self, clock):
        session = self._session(clock, mode=GameMode.MULTIPLICATION, quiz_mode=QuizMode.MCQ).start()
        options = session.current_options

        assert options == session.current_options
        assert session.current_question.answer in options
        assert len(options) == 4

    def test_typed_mode_has_no_options(self, clock):
        session = self._session(clock).start()
        assert session.current_options == []


class TestStudyTable:
    """Tests for study mode reference rows."""

    def test_multiplication_table(self):
        rows = study_table(GameMode.MULTIPLICATION)
        assert len(rows) == 400
        assert rows[0] == "1 × 1 = 1"
        assert "7 × 8 = 56" in rows

    def test_squares_and_cubes(self):
        assert study_table(GameMode.SQUARES)[-1] == "30² = 900"
        assert study_table(GameMode.CUBES)[-1] == "15³ = 3375"

    def test_no_table_for_addition(self):
        assert study_table(GameMode.ADDITION) == []
