# schemas.py
import re
from typing import List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

Theme = Literal["light", "dark"]

QUIZ_LENGTH = 10
MIN_CONCEPTS = 5
OPTIONS_PER_ITEM = 4
TITLE_MAX = 60


# -----------------------------------------------------------------------------
# Study package (validated model output)
# -----------------------------------------------------------------------------
class Concept(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str
    definition: str
    example: Optional[str] = None


class QuizItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str
    bloom_level: Optional[str] = Field(default=None, alias="bloomLevel")
    options: List[str]
    correct_answer: int = Field(alias="correctAnswer")
    explanation: str = ""

    @field_validator("options")
    @classmethod
    def _four_options(cls, v):
        if len(v) != OPTIONS_PER_ITEM:
            raise ValueError(f"expected exactly {OPTIONS_PER_ITEM} options, got {len(v)}")
        return v

    @model_validator(mode="after")
    def _answer_in_range(self):
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(f"correctAnswer {self.correct_answer} is not a valid option index")
        return self


class StudyPackage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    summary: str
    key_concepts: List[Concept] = Field(alias="keyConcepts")
    quiz: List[QuizItem]

    @field_validator("summary")
    @classmethod
    def _summary_not_blank(cls, v):
        if not v.strip():
            raise ValueError("summary is empty")
        return v

    @field_validator("key_concepts")
    @classmethod
    def _enough_concepts(cls, v):
        if len(v) < MIN_CONCEPTS:
            raise ValueError(f"expected at least {MIN_CONCEPTS} key concepts, got {len(v)}")
        return v

    @field_validator("quiz")
    @classmethod
    def _ten_questions(cls, v):
        if len(v) != QUIZ_LENGTH:
            raise ValueError(f"expected exactly {QUIZ_LENGTH} quiz items, got {len(v)}")
        return v


_concepts = TypeAdapter(List[Concept])
_quiz = TypeAdapter(List[QuizItem])


def dump_concepts(concepts) -> str:
    return _concepts.dump_json(list(concepts), by_alias=True).decode("utf-8")


def load_concepts(raw: str) -> List[Concept]:
    return _concepts.validate_json(raw)


def dump_quiz(quiz) -> str:
    return _quiz.dump_json(list(quiz), by_alias=True).decode("utf-8")


def load_quiz(raw: str) -> List[QuizItem]:
    return _quiz.validate_json(raw)


_SENTENCE_END = re.compile(r"(?<=[.!?])\s")


def derive_title(summary: str) -> str:
    """First sentence of the summary, cut to TITLE_MAX characters."""
    text = " ".join(summary.split())
    first = _SENTENCE_END.split(text, maxsplit=1)[0]
    return first[:TITLE_MAX].rstrip() or "Untitled session"


# -----------------------------------------------------------------------------
# Quiz attempts
# -----------------------------------------------------------------------------
class AnswerRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str
    selected_index: int = Field(alias="selectedIndex")
    correct_index: int = Field(alias="correctIndex")
    correct: bool


_answers = TypeAdapter(List[AnswerRecord])


def dump_answers(answers) -> str:
    return _answers.dump_json(list(answers), by_alias=True).decode("utf-8")


def load_answers(raw: str) -> List[AnswerRecord]:
    return _answers.validate_json(raw)


class AttemptResult(BaseModel):
    """Locally computed outcome of a completed quiz run, before it is saved."""
    model_config = ConfigDict(frozen=True)

    score: int
    total: int
    percentage: int
    answers: List[AnswerRecord]


class QuizAttempt(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    session_id: str = Field(alias="sessionId")
    user_id: str = Field(alias="userId")
    score: int
    total: int
    percentage: int
    answers: List[AnswerRecord]
    created_at: str = Field(alias="createdAt")


# -----------------------------------------------------------------------------
# Users & sessions
# -----------------------------------------------------------------------------
class UserRecord(BaseModel):
    id: str
    email: str
    name: str = ""
    theme: Theme = "dark"


class AuthSession(BaseModel):
    token: str
    user: UserRecord


class StudySession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str = Field(alias="ownerId")
    title: str
    created_at: str = Field(alias="createdAt")
    summary: str
    key_concepts: List[Concept] = Field(alias="keyConcepts")
    quiz: List[QuizItem]

    def package(self) -> StudyPackage:
        return StudyPackage(summary=self.summary, key_concepts=self.key_concepts, quiz=self.quiz)


class SessionRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    created_at: str = Field(alias="createdAt")


# -----------------------------------------------------------------------------
# API payloads
# -----------------------------------------------------------------------------
class RegisterIn(BaseModel):
    email: str
    password: str = Field(min_length=8)
    name: str = ""


class LoginIn(BaseModel):
    email: str
    password: str


class ThemeIn(BaseModel):
    theme: Theme


class AnalyzeIn(BaseModel):
    text: str


class RenameIn(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("title is empty")
        return v


class AnswerIn(BaseModel):
    option: int


class AttemptStatsOut(BaseModel):
    count: int
    mean: Optional[int] = None
    best: Optional[int] = None


class HistoryOut(BaseModel):
    items: List[SessionRow]


class AttemptsOut(BaseModel):
    items: List[QuizAttempt]
    stats: AttemptStatsOut
    band: Optional[str] = None


class RunOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(alias="runId")
    session_id: str = Field(alias="sessionId")
    state: str
    current_index: int = Field(alias="currentIndex")
    total: int
    question: Optional[QuizItem] = None
    answers: List[AnswerRecord]
    score: int
    result: Optional[AttemptResult] = None
    band: Optional[str] = None
    saved: bool = False
    save_error: Optional[str] = Field(default=None, alias="saveError")
