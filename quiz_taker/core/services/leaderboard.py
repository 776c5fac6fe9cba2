"""Best-attempt selection and leaderboard assembly for a quiz."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from typing import Any

from quiz_taker.constants.attempt_constants import (
    GUEST_USER_NAME,
    PARTICIPANT_PLACEHOLDER_TEMPLATE,
    ZERO_TIME_SPAN,
)
from quiz_taker.core.errors import AuthRequiredError, ForbiddenError, QuizTakerError
from quiz_taker.core.models import Attempt, LeaderboardEntry
from quiz_taker.core.time_format import parse_time_span

logger = logging.getLogger(__name__)

LeaderboardFetcher = Callable[..., list[dict[str, Any]]]

# Guest-scoped responses use different names for the same fields.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "userName": ("userName", "username"),
    "timeSpent": ("timeSpent", "timeTaken", "duration"),
    "completedAt": ("completedAt", "finishedAt"),
    "score": ("score", "percentage"),
}


def best_attempts_per_user(attempts: list[Attempt]) -> list[Attempt]:
    """Keep one attempt per display name: higher score, then less time, then earlier.

    Attempts are keyed by ``user_name`` rather than ``user_id``, so two users
    sharing a display name are merged. ``None`` names share one key.
    """
    best_by_user: dict[str | None, Attempt] = {}
    for attempt in attempts:
        current_best = best_by_user.get(attempt.user_name)
        if current_best is None or _is_better(attempt, current_best):
            best_by_user[attempt.user_name] = attempt
    return list(best_by_user.values())


def _is_better(candidate: Attempt, current: Attempt) -> bool:
    if candidate.score is None or current.score is None:
        # A missing score is neither higher, lower nor equal to a number.
        if candidate.score is not current.score:
            return False
    elif candidate.score > current.score:
        return True
    elif candidate.score < current.score:
        return False

    candidate_time = parse_time_span(candidate.time_spent)
    current_time = parse_time_span(current.time_spent)
    if candidate_time < current_time:
        return True
    if candidate_time == current_time:
        return _is_earlier(candidate.completed_at, current.completed_at)
    return False


def _is_earlier(candidate: datetime | None, current: datetime | None) -> bool:
    if candidate is None or current is None:
        return False
    try:
        return candidate < current
    except TypeError:
        return candidate.replace(tzinfo=None) < current.replace(tzinfo=None)


def filter_completed(attempts: list[Attempt], *, exclude_guests: bool) -> list[Attempt]:
    """Drop unfinished and zero-time attempts, and guest rows when asked to."""
    return [
        attempt
        for attempt in attempts
        if attempt.completed_at is not None
        and attempt.time_spent != ZERO_TIME_SPAN
        and not (exclude_guests and attempt.user_name == GUEST_USER_NAME)
    ]


def normalize_leaderboard_row(row: dict[str, Any]) -> dict[str, Any]:
    """Map an authenticated or guest-shaped row onto the canonical field names."""
    normalized = dict(row)
    for canonical, aliases in _FIELD_ALIASES.items():
        normalized[canonical] = next((row[alias] for alias in aliases if row.get(alias) is not None), None)
    return normalized


def to_leaderboard_entries(attempts: list[Attempt]) -> list[LeaderboardEntry]:
    """Number attempts from 1 and fill display defaults."""
    entries: list[LeaderboardEntry] = []
    for index, attempt in enumerate(attempts):
        position = index + 1
        entries.append(
            LeaderboardEntry(
                id=attempt.id if attempt.id else index,
                user_id=attempt.user_id,
                user_name=attempt.user_name or PARTICIPANT_PLACEHOLDER_TEMPLATE.format(position=position),
                score=attempt.score or 0,
                time_spent=attempt.time_spent or ZERO_TIME_SPAN,
                completed_at=attempt.completed_at,
                position=position,
            )
        )
    return entries


def build_leaderboard(attempts: list[Attempt], *, simple: bool = False) -> list[LeaderboardEntry]:
    """Filter and rank attempts returned by an authenticated leaderboard read."""
    completed = filter_completed(attempts, exclude_guests=not simple)
    ranked = completed if simple else best_attempts_per_user(completed)
    return to_leaderboard_entries(ranked)


def load_leaderboard(
    fetch: LeaderboardFetcher,
    parse: Callable[[dict[str, Any]], Attempt],
    quiz_id: int,
    *,
    credential: str | None = None,
    guest_session_id: str | None = None,
    simple: bool = False,
) -> list[LeaderboardEntry]:
    """Read a quiz leaderboard, degrading to an empty list on any failure.

    ``fetch(quiz_id, credential=..., guest_session_id=...)`` returns raw rows and
    ``parse`` turns a normalized row into an :class:`Attempt`. An unauthorized
    or forbidden primary read is retried exactly once without the credential
    when a guest session id is available.
    """
    try:
        rows = fetch(quiz_id, credential=credential, guest_session_id=guest_session_id)
        return build_leaderboard(_parse_rows(parse, rows, quiz_id), simple=simple)
    except (AuthRequiredError, ForbiddenError) as exc:
        if not guest_session_id:
            logger.warning("Leaderboard for quiz %s unavailable: %s", quiz_id, exc)
            return []
        logger.info("Leaderboard for quiz %s refused, retrying with guest session", quiz_id)
    except QuizTakerError as exc:
        logger.warning("Leaderboard for quiz %s unavailable: %s", quiz_id, exc)
        return []

    try:
        rows = fetch(quiz_id, credential=None, guest_session_id=guest_session_id)
        return to_leaderboard_entries(_parse_rows(parse, rows, quiz_id))
    except QuizTakerError as exc:
        logger.warning("Guest leaderboard for quiz %s unavailable: %s", quiz_id, exc)
        return []


def _parse_rows(
    parse: Callable[[dict[str, Any]], Attempt], rows: list[dict[str, Any]], quiz_id: int
) -> list[Attempt]:
    attempts: list[Attempt] = []
    for row in rows:
        try:
            attempts.append(parse(normalize_leaderboard_row(row)))
        except QuizTakerError as exc:
            logger.warning("Skipping malformed leaderboard row of quiz %s: %s", quiz_id, exc)
    return attempts
