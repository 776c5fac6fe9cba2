"""Domain models for the quiz attempt engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class QuestionType(Enum):
    SINGLE_CHOICE = "single"
    MULTIPLE_CHOICE = "multiple"


@dataclass(slots=True)
class Option:
    """Answer option; ``is_correct`` is only known to grading and statistics."""

    id: int
    text: str
    is_correct: bool | None = None


@dataclass(slots=True)
class Question:
    """Quiz question with its options in display order."""

    id: int
    text: str
    type: QuestionType
    options: list[Option] = field(default_factory=list)
    order: int = 0

    @property
    def is_single_choice(self) -> bool:
        return self.type is QuestionType.SINGLE_CHOICE

    def option_ids(self) -> list[int]:
        return [option.id for option in self.options]


@dataclass(slots=True)
class Quiz:
    """Quiz metadata; immutable for the duration of an attempt."""

    id: int
    title: str
    questions_count: int = 0
    time_limit_seconds: int | None = None  # None means unlimited
    is_public: bool = True
    private_access_key: str | None = None


@dataclass(slots=True)
class Attempt:
    """One run through a quiz by a user or a guest session."""

    id: int
    quiz_id: int | None = None
    user_id: int | None = None
    guest_session_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_spent: str | None = None
    score: int | float | None = None
    user_name: str | None = None


@dataclass(slots=True)
class AnswerRecord:
    """Persisted answer row, one per chosen option."""

    id: int | None
    attempt_id: int | None
    question_id: int
    chosen_option_id: int | None
    is_correct: bool


@dataclass(slots=True)
class GroupedAnswer:
    """Per-question rollup of one or more answer records."""

    question_id: int
    selected_option_ids: list[int | None] = field(default_factory=list)
    is_correct: bool = True
    answers: list[AnswerRecord] = field(default_factory=list)


@dataclass(slots=True)
class AttemptAnswers:
    """Grouped view of an attempt's answers alongside the untouched rows."""

    grouped: list[GroupedAnswer]
    raw: list[AnswerRecord]


@dataclass(slots=True)
class AnswerSubmission:
    question_id: int
    selected_option_ids: list[int]

    def to_payload(self) -> dict[str, object]:
        return {"questionId": self.question_id, "selectedOptionIds": list(self.selected_option_ids)}


@dataclass(slots=True)
class LeaderboardEntry:
    """Display row of a leaderboard."""

    id: int
    user_id: int | None
    user_name: str
    score: int | float
    time_spent: str
    completed_at: datetime | None
    position: int


@dataclass(slots=True)
class WrongChoice:
    option_id: int
    count: int


@dataclass(slots=True)
class QuestionStat:
    """Correctness statistics of one question across a quiz's attempts."""

    question_id: int
    text: str
    order: int
    total_attempts: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    correct_rate: float = 0.0
    most_common_wrong_choices: list[WrongChoice] = field(default_factory=list)
    is_estimated: bool = False


@dataclass(slots=True)
class OverallStats:
    """Quiz-wide summary of completed attempts."""

    total_attempts: int = 0
    average_score: float = 0.0
    average_time: str = "00:00:00"
    average_time_seconds: int = 0
    perfect_attempts: int = 0
    perfect_attempts_percentage: int = 0
    unique_users: int = 0


@dataclass(slots=True)
class Progress:
    current: int
    total: int

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.current / self.total * 100
