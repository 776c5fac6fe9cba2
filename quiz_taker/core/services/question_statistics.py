"""Per-question correctness statistics across the attempts of a quiz."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from datetime import datetime
from enum import Enum
import logging
import math

from quiz_taker.constants.attempt_constants import MOST_COMMON_WRONG_CHOICES_LIMIT
from quiz_taker.core.errors import QuizTakerError
from quiz_taker.core.models import (
    AnswerRecord,
    LeaderboardEntry,
    OverallStats,
    Question,
    QuestionStat,
    WrongChoice,
)
from quiz_taker.core.time_format import format_seconds, parse_time_span

logger = logging.getLogger(__name__)


class StatsSortOrder(Enum):
    DIFFICULTY = "difficulty"  # hardest first
    CORRECT = "correct"
    ORDER = "order"


def aggregate_question_stats(
    questions: list[Question],
    answer_records_by_attempt: list[list[AnswerRecord]],
) -> list[QuestionStat]:
    """Count correct and incorrect answer rows for each question.

    ``total_attempts`` counts distinct attempts that answered the question,
    while correct and incorrect counts are per answer row, so one
    multiple-choice answer can add several incorrect rows.
    """
    known_ids = {question.id for question in questions}
    attempts_seen: dict[int, set[int]] = {question_id: set() for question_id in known_ids}
    correct: Counter[int] = Counter()
    incorrect: Counter[int] = Counter()
    wrong_choices: dict[int, Counter[int]] = {question_id: Counter() for question_id in known_ids}

    for attempt_index, records in enumerate(answer_records_by_attempt):
        for record in records:
            if record.question_id not in known_ids:
                continue
            attempt_key = record.attempt_id if record.attempt_id is not None else -(attempt_index + 1)
            attempts_seen[record.question_id].add(attempt_key)
            if record.is_correct:
                correct[record.question_id] += 1
            else:
                incorrect[record.question_id] += 1
                if record.chosen_option_id is not None:
                    wrong_choices[record.question_id][record.chosen_option_id] += 1

    stats: list[QuestionStat] = []
    for question in questions:
        total = len(attempts_seen[question.id])
        stats.append(
            QuestionStat(
                question_id=question.id,
                text=question.text,
                order=question.order,
                total_attempts=total,
                correct_answers=correct[question.id],
                incorrect_answers=incorrect[question.id],
                correct_rate=_rate(correct[question.id], total),
                most_common_wrong_choices=[
                    WrongChoice(option_id=option_id, count=count)
                    for option_id, count in wrong_choices[question.id].most_common(MOST_COMMON_WRONG_CHOICES_LIMIT)
                ],
            )
        )
    return stats


def estimate_question_stats(questions: list[Question], attempts: list[LeaderboardEntry]) -> list[QuestionStat]:
    """Spread the average score evenly over the questions.

    Used when no answer rows could be read, so attempts still produce a
    rough picture instead of zeros.
    """
    if not questions:
        return []
    total = len(attempts)
    correct = 0
    if total:
        average_score = sum(attempt.score or 0 for attempt in attempts) / total
        average_correct_rate = average_score / len(questions)
        correct = min(max(_round_half_up(total * average_correct_rate), 0), total)
    return [
        QuestionStat(
            question_id=question.id,
            text=question.text,
            order=question.order,
            total_attempts=total,
            correct_answers=correct,
            incorrect_answers=total - correct,
            correct_rate=_rate(correct, total),
            is_estimated=True,
        )
        for question in questions
    ]


def load_question_statistics(
    fetch_answers: Callable[..., list[AnswerRecord]],
    questions: list[Question],
    attempts: list[LeaderboardEntry],
    *,
    credential: str | None = None,
) -> list[QuestionStat]:
    """Read every attempt's answers and aggregate them.

    Attempts whose answers cannot be read are skipped. When none can be read
    the score-based estimate is returned instead.
    """
    if not attempts or not questions:
        return []

    records_by_attempt: list[list[AnswerRecord]] = []
    for attempt in attempts:
        try:
            records = fetch_answers(attempt.id, credential=credential, guest_session_id=None)
        except QuizTakerError as exc:
            logger.warning("Skipping answers of attempt %s: %s", attempt.id, exc)
            continue
        records_by_attempt.append(
            [
                record if record.attempt_id is not None else _with_attempt_id(record, attempt.id)
                for record in records
            ]
        )

    if not any(records_by_attempt):
        logger.info("No answer rows available, estimating question statistics from scores")
        return estimate_question_stats(questions, attempts)
    return aggregate_question_stats(questions, records_by_attempt)


def sort_question_stats(stats: list[QuestionStat], order: StatsSortOrder) -> list[QuestionStat]:
    if order is StatsSortOrder.DIFFICULTY:
        return sorted(stats, key=lambda stat: stat.correct_rate)
    if order is StatsSortOrder.CORRECT:
        return sorted(stats, key=lambda stat: stat.correct_answers, reverse=True)
    return sorted(stats, key=lambda stat: stat.order)


def overall_stats(
    attempts: list[LeaderboardEntry],
    questions_count: int,
    *,
    date_range: tuple[datetime, datetime] | None = None,
) -> OverallStats:
    """Summarize attempts, optionally limited to those completed strictly inside ``date_range``."""
    if date_range is not None:
        start, end = date_range
        attempts = [
            attempt
            for attempt in attempts
            if attempt.completed_at is not None and start < attempt.completed_at < end
        ]
    if not attempts:
        return OverallStats()

    total = len(attempts)
    average_score = round(sum(attempt.score or 0 for attempt in attempts) / total, 1)
    perfect = sum(1 for attempt in attempts if (attempt.score or 0) >= questions_count)
    unique_users = {attempt.user_id for attempt in attempts if attempt.user_id}
    total_seconds = 0
    for attempt in attempts:
        seconds = parse_time_span(attempt.time_spent)
        if not math.isnan(seconds):
            total_seconds += int(seconds)
    average_seconds = _round_half_up(total_seconds / total)
    return OverallStats(
        total_attempts=total,
        average_score=average_score,
        average_time=format_seconds(average_seconds),
        average_time_seconds=average_seconds,
        perfect_attempts=perfect,
        perfect_attempts_percentage=_round_half_up(perfect / total * 100),
        unique_users=len(unique_users),
    )


def _rate(correct: int, total: int) -> float:
    if total == 0:
        return 0.0
    return correct / total * 100


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _with_attempt_id(record: AnswerRecord, attempt_id: int) -> AnswerRecord:
    return AnswerRecord(
        id=record.id,
        attempt_id=attempt_id,
        question_id=record.question_id,
        chosen_option_id=record.chosen_option_id,
        is_correct=record.is_correct,
    )
