"""Facade wiring the attempt engine to the quiz API and client-local storage."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from threading import Lock

from quiz_taker.client.api_client import QuizApiClient
from quiz_taker.core.errors import ForbiddenError, QuizTakerError
from quiz_taker.core.models import Attempt, AttemptAnswers, LeaderboardEntry, OverallStats, QuestionStat
from quiz_taker.core.services.answer_grouping import load_attempt_answers
from quiz_taker.core.services.attempt_session import AttemptSession, SessionState
from quiz_taker.core.services.checkpoint_store import (
    AccessKeyStore,
    CheckpointRepository,
    GuestSessionStore,
    KeyValueStore,
)
from quiz_taker.core.services.leaderboard import load_leaderboard
from quiz_taker.core.services.question_statistics import (
    StatsSortOrder,
    load_question_statistics,
    overall_stats,
    sort_question_stats,
)

logger = logging.getLogger(__name__)

_LIVE_STATES = (SessionState.RESTORING, SessionState.ACTIVE, SessionState.EXPIRED, SessionState.SUBMITTING)


class AttemptManager:
    """Facade for the engine services: sessions, answers, leaderboards and statistics.

    This is the only place that reads the guest session id and private access
    keys from storage; everything below it receives them as arguments.
    """

    def __init__(self, api: QuizApiClient, store: KeyValueStore) -> None:
        self._lock = Lock()
        self._api = api
        self._checkpoints = CheckpointRepository(store)
        self._access_keys = AccessKeyStore(store)
        self._guest_sessions = GuestSessionStore(store)
        self._sessions: dict[tuple[int, str | None], AttemptSession] = {}

    # --- Attempt sessions ---

    def start_session(
        self,
        quiz_id: int,
        *,
        credential: str | None = None,
        user_id: int | None = None,
        on_tick: Callable[[int], None] | None = None,
    ) -> AttemptSession:
        """Open the attempt screen for a quiz, restoring an in-flight attempt first."""
        identity = str(user_id) if user_id is not None else None
        key = (quiz_id, identity)
        with self._lock:
            previous = self._sessions.pop(key, None)
        if previous is not None and previous.state in _LIVE_STATES:
            logger.info("Closing previous session for quiz %s before reopening", quiz_id)
            previous.close()

        session = AttemptSession(self._api, self._checkpoints, on_tick=on_tick)
        session.open(
            quiz_id,
            identity=identity,
            credential=credential,
            access_key=self._access_keys.get(quiz_id),
        )
        if session.guest_session_id:
            self._guest_sessions.set(session.guest_session_id)
        with self._lock:
            self._sessions[key] = session
        return session

    def close_all_sessions(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def get_attempt_by_id(self, attempt_id: int, credential: str | None = None) -> Attempt:
        return self._api.get_attempt_by_id(attempt_id, credential)

    def get_user_attempts(self, credential: str | None, user_id: int) -> list[Attempt]:
        return self._api.get_user_attempts(credential, user_id)

    # --- Results & analytics ---

    def get_attempt_answers(
        self,
        attempt_id: int,
        *,
        attempt: Attempt | None = None,
        credential: str | None = None,
        guest_session_id: str | None = None,
    ) -> AttemptAnswers:
        return load_attempt_answers(
            self._api.fetch_attempt_answers,
            attempt_id,
            attempt=attempt,
            credential=credential,
            guest_session_id=guest_session_id or self._guest_sessions.get(),
        )

    def get_leaderboard(
        self, quiz_id: int, credential: str | None = None, guest_session_id: str | None = None
    ) -> list[LeaderboardEntry]:
        """One best attempt per participant, guests excluded."""
        return load_leaderboard(
            self._api.fetch_leaderboard,
            self._api.parse_leaderboard_row,
            quiz_id,
            credential=credential,
            guest_session_id=guest_session_id or self._guest_sessions.get(),
        )

    def get_leaderboard_simple(
        self, quiz_id: int, credential: str | None = None, guest_session_id: str | None = None
    ) -> list[LeaderboardEntry]:
        """Every completed attempt of the quiz, unranked."""
        return load_leaderboard(
            self._api.fetch_leaderboard,
            self._api.parse_leaderboard_row,
            quiz_id,
            credential=credential,
            guest_session_id=guest_session_id or self._guest_sessions.get(),
            simple=True,
        )

    def get_question_statistics(
        self,
        quiz_id: int,
        credential: str | None = None,
        order: StatsSortOrder = StatsSortOrder.ORDER,
    ) -> list[QuestionStat]:
        try:
            questions = self._api.get_quiz_questions(quiz_id, self._access_keys.get(quiz_id))
        except QuizTakerError as exc:
            logger.warning("Questions of quiz %s unavailable: %s", quiz_id, exc)
            return []
        attempts = self.get_leaderboard_simple(quiz_id, credential)
        stats = load_question_statistics(
            self._api.fetch_attempt_answers,
            questions,
            attempts,
            credential=credential,
        )
        return sort_question_stats(stats, order)

    def get_overall_stats(
        self,
        quiz_id: int,
        credential: str | None = None,
        date_range: tuple[datetime, datetime] | None = None,
    ) -> OverallStats:
        try:
            quiz = self._api.get_quiz_by_id(quiz_id, credential, self._access_keys.get(quiz_id))
        except QuizTakerError as exc:
            logger.warning("Quiz %s unavailable for statistics: %s", quiz_id, exc)
            return OverallStats()
        attempts = self.get_leaderboard_simple(quiz_id, credential)
        return overall_stats(attempts, quiz.questions_count, date_range=date_range)

    # --- Private quiz access ---

    def grant_access(self, quiz_id: int, access_key: str) -> str:
        """Validate a private access key and remember it for the quiz."""
        normalized = access_key.strip().upper()
        try:
            unlocked_quiz_id = self._api.connect_to_quiz_by_code(normalized)
        except ForbiddenError:
            # The connect endpoint refuses some valid keys; keep the key for later reads.
            logger.info("Access check for quiz %s was forbidden, keeping key anyway", quiz_id)
            return self._access_keys.grant(quiz_id, normalized)
        if unlocked_quiz_id != quiz_id:
            raise ForbiddenError(f"Access key does not unlock quiz {quiz_id}.")
        return self._access_keys.grant(quiz_id, normalized)

    def get_access_key(self, quiz_id: int) -> str | None:
        return self._access_keys.get(quiz_id)

    def revoke_access(self, quiz_id: int) -> None:
        self._access_keys.revoke(quiz_id)
