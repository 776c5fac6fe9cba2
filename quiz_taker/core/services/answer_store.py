"""Service holding the selected options of an in-progress attempt."""

from __future__ import annotations

from quiz_taker.core.errors import AnswerValidationError
from quiz_taker.core.models import AnswerSubmission, Question


class AnswerStore:
    """Maps question ids to the ordered option ids chosen for them."""

    def __init__(self, questions: list[Question]) -> None:
        self._questions: dict[int, Question] = {question.id: question for question in questions}
        self._order: list[int] = [question.id for question in questions]
        self._selections: dict[int, list[int]] = {}

    def save_answer(self, question_id: int, option_ids: list[int]) -> list[int]:
        """Replace the selection for a question after validating it."""
        question = self._get_question(question_id)
        cleaned = self._validate_selection(question, option_ids)
        if cleaned:
            self._selections[question_id] = cleaned
        else:
            self._selections.pop(question_id, None)
        return list(cleaned)

    def toggle_option(self, question_id: int, option_id: int) -> list[int]:
        """Select or deselect one option following the question's type."""
        question = self._get_question(question_id)
        current = self._selections.get(question_id, [])
        if question.is_single_choice:
            # A second pick replaces the first one
            selection = [option_id]
        elif option_id in current:
            selection = [existing for existing in current if existing != option_id]
        else:
            selection = current + [option_id]
        return self.save_answer(question_id, selection)

    def get_answer(self, question_id: int) -> list[int]:
        return list(self._selections.get(question_id, []))

    def get_answers(self) -> dict[int, list[int]]:
        return {question_id: list(ids) for question_id, ids in self._selections.items()}

    def answered_count(self) -> int:
        return sum(1 for ids in self._selections.values() if ids)

    def is_answered(self, question_id: int) -> bool:
        return bool(self._selections.get(question_id))

    def load(self, selections: dict[int, list[int]]) -> None:
        """Rehydrate from a checkpoint, dropping entries that no longer validate."""
        self._selections.clear()
        for question_id, option_ids in selections.items():
            try:
                self.save_answer(question_id, option_ids)
            except AnswerValidationError:
                continue

    def clear(self) -> None:
        self._selections.clear()

    def to_submission(self) -> list[AnswerSubmission]:
        """Build the submission entries for answered questions, in quiz order."""
        return [
            AnswerSubmission(question_id=question_id, selected_option_ids=list(self._selections[question_id]))
            for question_id in self._order
            if self._selections.get(question_id)
        ]

    def _get_question(self, question_id: int) -> Question:
        question = self._questions.get(question_id)
        if question is None:
            raise AnswerValidationError(f"Question {question_id} is not part of this attempt.")
        return question

    @staticmethod
    def _validate_selection(question: Question, option_ids: list[int]) -> list[int]:
        cleaned = list(option_ids)
        if len(set(cleaned)) != len(cleaned):
            raise AnswerValidationError(f"Duplicate options selected for question {question.id}.")
        known = set(question.option_ids())
        unknown = [option_id for option_id in cleaned if option_id not in known]
        if unknown:
            raise AnswerValidationError(f"Options {unknown} do not belong to question {question.id}.")
        if question.is_single_choice and len(cleaned) > 1:
            raise AnswerValidationError(f"Question {question.id} accepts a single option.")
        return cleaned
