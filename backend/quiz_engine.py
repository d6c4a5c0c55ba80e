# quiz_engine.py
"""Per-attempt quiz state machine.

IN_PROGRESS --answer--> AWAITING_ADVANCE --advance--> IN_PROGRESS (next item)
                                         --advance--> COMPLETED   (after the last item)

reset() returns to IN_PROGRESS at item 0 from any state. Entering COMPLETED
computes the AttemptResult and hands it to `on_complete` exactly once.
"""
import enum
import logging
from typing import Callable, List, Optional, Sequence

from errors import PersistenceError, QuizStateError, Unauthorized
from history import percentage
from schemas import AnswerRecord, AttemptResult, QuizItem

logger = logging.getLogger(__name__)


class QuizState(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    AWAITING_ADVANCE = "awaiting_advance"
    COMPLETED = "completed"


class QuizEngine:
    def __init__(self, quiz: Sequence[QuizItem], on_complete: Optional[Callable[[AttemptResult], None]] = None):
        if not quiz:
            raise QuizStateError("Cannot start a quiz with no questions.")
        self.quiz: List[QuizItem] = list(quiz)
        self.on_complete = on_complete
        self.reset()

    # -- state ---------------------------------------------------------------
    def reset(self) -> None:
        self.state = QuizState.IN_PROGRESS
        self.current_index = 0
        self._answers: List[AnswerRecord] = []
        self.result: Optional[AttemptResult] = None
        self.saved = False
        self.save_error: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.quiz)

    @property
    def current_item(self) -> Optional[QuizItem]:
        if self.state is QuizState.COMPLETED:
            return None
        return self.quiz[self.current_index]

    @property
    def answers(self) -> List[AnswerRecord]:
        return list(self._answers)

    @property
    def score(self) -> int:
        return sum(1 for a in self._answers if a.correct)

    # -- transitions ---------------------------------------------------------
    def answer(self, option_index: int) -> AnswerRecord:
        if self.state is QuizState.COMPLETED:
            raise QuizStateError("The quiz is already completed.")
        if self.state is QuizState.AWAITING_ADVANCE:
            # first answer stands
            return self._answers[-1]

        item = self.quiz[self.current_index]
        if not 0 <= option_index < len(item.options):
            raise QuizStateError(
                f"Option {option_index} does not exist for question {self.current_index + 1}."
            )
        record = AnswerRecord(
            question=item.question,
            selected_index=option_index,
            correct_index=item.correct_answer,
            correct=option_index == item.correct_answer,
        )
        self._answers.append(record)
        self.state = QuizState.AWAITING_ADVANCE
        return record

    def advance(self) -> QuizState:
        if self.state is not QuizState.AWAITING_ADVANCE:
            raise QuizStateError("Answer the current question before moving on.")
        if self.current_index + 1 < self.total:
            self.current_index += 1
            self.state = QuizState.IN_PROGRESS
        else:
            self._complete()
        return self.state

    def _complete(self) -> None:
        answers = list(self._answers)
        if len(answers) != self.total:
            raise QuizStateError(f"Expected {self.total} answers, got {len(answers)}.")
        score = sum(1 for a in answers if a.correct)
        self.result = AttemptResult(
            score=score,
            total=self.total,
            percentage=percentage(score, self.total),
            answers=answers,
        )
        self.state = QuizState.COMPLETED
        logger.info("Quiz completed: %d/%d", score, self.total)

        if self.on_complete is None:
            return
        try:
            self.on_complete(self.result)
        except (PersistenceError, Unauthorized) as e:
            # the score stays available; only the save failed
            logger.warning("Could not save quiz attempt: %s", e)
            self.save_error = e.message or str(e)
        else:
            self.saved = True
