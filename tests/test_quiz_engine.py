# tests/test_quiz_engine.py
import pytest

from errors import PersistenceError, QuizStateError, Unauthorized
from quiz_engine import QuizEngine, QuizState


def _wrong(item):
    return (item.correct_answer + 1) % 4


def test_empty_quiz_is_rejected():
    """An empty quiz would make the percentage 0/0."""
    with pytest.raises(QuizStateError):
        QuizEngine([])


def test_initial_state(package):
    engine = QuizEngine(package.quiz)
    assert engine.state is QuizState.IN_PROGRESS
    assert engine.current_index == 0
    assert engine.answers == []
    assert engine.current_item == package.quiz[0]


def test_answer_records_and_waits(package):
    engine = QuizEngine(package.quiz)
    item = package.quiz[0]
    rec = engine.answer(item.correct_answer)
    assert rec.correct is True
    assert rec.selected_index == item.correct_answer
    assert rec.correct_index == item.correct_answer
    assert rec.question == item.question
    assert engine.state is QuizState.AWAITING_ADVANCE


def test_second_answer_is_ignored(package):
    """First answer stands; a second call on the same question changes nothing."""
    engine = QuizEngine(package.quiz)
    item = package.quiz[0]
    first = engine.answer(_wrong(item))
    second = engine.answer(item.correct_answer)
    assert second == first
    assert len(engine.answers) == 1
    assert engine.answers[0].correct is False
    assert engine.score == 0


def test_advance_requires_an_answer(package):
    engine = QuizEngine(package.quiz)
    with pytest.raises(QuizStateError):
        engine.advance()


def test_option_out_of_range(package):
    engine = QuizEngine(package.quiz)
    with pytest.raises(QuizStateError):
        engine.answer(4)
    with pytest.raises(QuizStateError):
        engine.answer(-1)
    assert engine.state is QuizState.IN_PROGRESS


def test_nine_of_ten_scenario(package):
    """9 right, 1 wrong: one save, only after the final advance."""
    saved = []
    engine = QuizEngine(package.quiz, on_complete=saved.append)
    for i, item in enumerate(package.quiz):
        engine.answer(item.correct_answer if i < 9 else _wrong(item))
        assert saved == []
        engine.advance()

    assert engine.state is QuizState.COMPLETED
    assert len(saved) == 1
    result = saved[0]
    assert (result.score, result.total, result.percentage) == (9, 10, 90)
    assert engine.result == result
    assert engine.saved is True
    assert engine.current_item is None


def test_completion_totals_are_consistent(package):
    engine = QuizEngine(package.quiz)
    for i, item in enumerate(package.quiz):
        engine.answer(item.correct_answer if i % 3 == 0 else _wrong(item))
        engine.advance()
    result = engine.result
    assert len(result.answers) == len(package.quiz)
    assert result.score == sum(1 for a in result.answers if a.correct)
    assert result.score == 4
    assert result.percentage == 40


def test_percentage_rounds_half_up(package):
    # 1 of 8 correct is 12.5%
    engine = QuizEngine(package.quiz[:8])
    for i, item in enumerate(package.quiz[:8]):
        engine.answer(item.correct_answer if i == 0 else _wrong(item))
        engine.advance()
    assert engine.result.percentage == 13


def test_no_transitions_after_completion(package):
    calls = []
    engine = QuizEngine(package.quiz[:1], on_complete=calls.append)
    engine.answer(0)
    engine.advance()
    with pytest.raises(QuizStateError):
        engine.answer(0)
    with pytest.raises(QuizStateError):
        engine.advance()
    assert len(calls) == 1


def test_reset_discards_progress(package):
    calls = []
    engine = QuizEngine(package.quiz, on_complete=calls.append)
    engine.answer(0)
    engine.advance()
    engine.answer(1)
    engine.reset()
    assert engine.state is QuizState.IN_PROGRESS
    assert engine.current_index == 0
    assert engine.answers == []
    assert calls == []


def test_reset_after_completion_allows_new_attempt(package):
    calls = []
    engine = QuizEngine(package.quiz[:2], on_complete=calls.append)
    for _ in range(2):
        for item in package.quiz[:2]:
            engine.answer(item.correct_answer)
            engine.advance()
        engine.reset()
    assert len(calls) == 2
    assert engine.result is None


@pytest.mark.parametrize("error", [PersistenceError("db down"), Unauthorized("token expired")])
def test_save_failure_keeps_result(package, error):
    def boom(result):
        raise error

    engine = QuizEngine(package.quiz[:1], on_complete=boom)
    engine.answer(package.quiz[0].correct_answer)
    engine.advance()
    assert engine.state is QuizState.COMPLETED
    assert engine.result.percentage == 100
    assert engine.saved is False
    assert engine.save_error == error.message
