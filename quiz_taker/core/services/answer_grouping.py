"""Reduces per-option answer rows into one entry per question."""

from __future__ import annotations

from collections.abc import Callable
import logging

from quiz_taker.core.errors import ForbiddenError
from quiz_taker.core.models import AnswerRecord, Attempt, AttemptAnswers, GroupedAnswer

logger = logging.getLogger(__name__)

AnswerFetcher = Callable[..., list[AnswerRecord]]


def group_answer_records(records: list[AnswerRecord]) -> AttemptAnswers:
    """Group answer rows by question.

    Option ids keep the order the rows arrived in and a question is correct
    only when every one of its rows is correct.
    """
    groups: dict[int, GroupedAnswer] = {}
    for record in records:
        group = groups.get(record.question_id)
        if group is None:
            group = GroupedAnswer(question_id=record.question_id)
            groups[record.question_id] = group
        group.selected_option_ids.append(record.chosen_option_id)
        group.answers.append(record)
        if not record.is_correct:
            group.is_correct = False
    return AttemptAnswers(grouped=list(groups.values()), raw=list(records))


def load_attempt_answers(
    fetch: AnswerFetcher,
    attempt_id: int,
    *,
    attempt: Attempt | None = None,
    credential: str | None = None,
    guest_session_id: str | None = None,
) -> AttemptAnswers:
    """Fetch and group an attempt's answers, retrying as guest when forbidden.

    ``fetch`` is called as ``fetch(attempt_id, credential=..., guest_session_id=...)``.
    The guest session recorded on ``attempt`` wins over the explicit one.
    """
    session_id = (attempt.guest_session_id if attempt else None) or guest_session_id
    try:
        if credential:
            records = fetch(attempt_id, credential=credential, guest_session_id=None)
        else:
            records = fetch(attempt_id, credential=None, guest_session_id=session_id)
    except ForbiddenError:
        if not session_id:
            raise
        logger.info("Answers of attempt %s are forbidden, retrying with guest session", attempt_id)
        records = fetch(attempt_id, credential=None, guest_session_id=session_id)
    return group_answer_records(records)
