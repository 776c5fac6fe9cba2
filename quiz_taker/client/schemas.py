"""Pydantic models describing the quiz API's JSON payloads."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from quiz_taker.core.models import (
    AnswerRecord,
    AnswerSubmission,
    Attempt,
    Option,
    Question,
    QuestionType,
    Quiz,
)
from quiz_taker.core.time_format import parse_time_limit

_SINGLE_CHOICE_VALUES = {"0", "single", "singlechoice"}
_MULTIPLE_CHOICE_VALUES = {"1", "multiple", "multiplechoice"}


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AttemptSchema(ApiModel):
    id: int = 0
    quiz_id: int | None = None
    user_id: int | None = None
    guest_session_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_spent: str | None = None
    score: int | float | None = None
    user_name: str | None = None

    @field_validator("started_at", "completed_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_model(self) -> Attempt:
        return Attempt(
            id=self.id,
            quiz_id=self.quiz_id,
            user_id=self.user_id,
            guest_session_id=self.guest_session_id,
            started_at=self.started_at,
            completed_at=self.completed_at,
            time_spent=self.time_spent,
            score=self.score,
            user_name=self.user_name,
        )


class OptionSchema(ApiModel):
    id: int
    text: str = ""
    is_correct: bool | None = None

    def to_model(self) -> Option:
        return Option(id=self.id, text=self.text, is_correct=self.is_correct)


class QuestionSchema(ApiModel):
    id: int
    text: str = ""
    type: int | str = 0
    options: list[OptionSchema] = Field(default_factory=list)
    order: int = 0

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: int | str) -> int | str:
        normalized = str(value).strip().lower()
        if normalized not in _SINGLE_CHOICE_VALUES | _MULTIPLE_CHOICE_VALUES:
            raise ValueError(f"Unknown question type {value!r}")
        return value

    def to_model(self) -> Question:
        normalized = str(self.type).strip().lower()
        question_type = (
            QuestionType.SINGLE_CHOICE if normalized in _SINGLE_CHOICE_VALUES else QuestionType.MULTIPLE_CHOICE
        )
        return Question(
            id=self.id,
            text=self.text,
            type=question_type,
            options=[option.to_model() for option in self.options],
            order=self.order,
        )


class QuizSchema(ApiModel):
    id: int
    title: str = ""
    questions_count: int = 0
    time_limit: str | int | None = None
    is_public: bool = True
    private_access_key: str | None = None

    def to_model(self) -> Quiz:
        return Quiz(
            id=self.id,
            title=self.title,
            questions_count=self.questions_count,
            time_limit_seconds=parse_time_limit(self.time_limit),
            is_public=self.is_public,
            private_access_key=self.private_access_key,
        )


class AnswerRecordSchema(ApiModel):
    id: int | None = None
    attempt_id: int | None = None
    question_id: int
    chosen_option_id: int | None = None
    is_correct: bool = False

    def to_model(self) -> AnswerRecord:
        return AnswerRecord(
            id=self.id,
            attempt_id=self.attempt_id,
            question_id=self.question_id,
            chosen_option_id=self.chosen_option_id,
            is_correct=self.is_correct,
        )


class AnswerPayload(ApiModel):
    question_id: int
    selected_option_ids: list[int]


class FinishAttemptPayload(ApiModel):
    answers: list[AnswerPayload]

    @classmethod
    def from_submission(cls, answers: list[AnswerSubmission]) -> FinishAttemptPayload:
        return cls(
            answers=[
                AnswerPayload(question_id=answer.question_id, selected_option_ids=answer.selected_option_ids)
                for answer in answers
            ]
        )


class QuizConnection(ApiModel):
    quiz_id: int
