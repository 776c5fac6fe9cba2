"""State machine driving a user through one timed quiz attempt."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum, auto
import logging
from threading import Lock
import time

from quiz_taker.constants.attempt_constants import TICK_INTERVAL_SECONDS
from quiz_taker.core.errors import QuizTakerError, SessionStateError
from quiz_taker.core.models import Attempt, Progress, Question, Quiz
from quiz_taker.core.services.answer_store import AnswerStore
from quiz_taker.core.services.attempt_timer import AttemptTimer
from quiz_taker.core.services.checkpoint_store import AttemptCheckpoint, CheckpointRepository

logger = logging.getLogger(__name__)


class SessionState(Enum):
    UNINITIALIZED = auto()
    RESTORING = auto()
    ACTIVE = auto()
    SUBMITTING = auto()
    SUBMITTED = auto()
    EXPIRED = auto()
    ABANDONED = auto()
    CLOSED = auto()


class AttemptSession:
    """Owns the answer store and timer of a single attempt.

    ``api`` is the quiz API collaborator (see ``QuizApiClient``); the session
    only calls ``start_attempt``, ``finish_attempt``, ``get_attempt_by_id``,
    ``get_quiz_by_id`` and ``get_quiz_questions`` on it. Credentials and
    identities are passed in by the caller and never looked up here.
    """

    def __init__(
        self,
        api,
        checkpoints: CheckpointRepository,
        *,
        clock: Callable[[], float] = time.time,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        on_tick: Callable[[int], None] | None = None,
    ) -> None:
        self._api = api
        self._checkpoints = checkpoints
        self._clock = clock
        self._tick_interval = tick_interval
        self._on_tick = on_tick
        self._lock = Lock()

        self._state = SessionState.UNINITIALIZED
        self._closed: bool = False
        self._identity: str | None = None
        self._credential: str | None = None
        self._attempt: Attempt | None = None
        self._quiz: Quiz | None = None
        self._questions: list[Question] = []
        self._answers = AnswerStore([])
        self._timer: AttemptTimer | None = None
        self._deadline: float | None = None
        self._current_index: int = 0
        self._visited: set[int] = set()
        self._guest_session_id: str | None = None
        self._result: Attempt | None = None
        self._expiry_pending: bool = False
        self.last_error: Exception | None = None

    # --- Lifecycle ---

    def open(
        self,
        quiz_id: int,
        *,
        identity: str | None = None,
        credential: str | None = None,
        access_key: str | None = None,
    ) -> bool:
        """Restore the checkpointed attempt for this quiz or start a new one.

        Returns True when an in-flight attempt was restored.
        """
        with self._lock:
            if self._state is not SessionState.UNINITIALIZED:
                raise SessionStateError(f"Cannot open a session in state {self._state.name}.")
            self._state = SessionState.RESTORING
        self._identity = identity
        self._credential = credential

        try:
            restored = self._restore(quiz_id, credential, access_key)
            if not restored and not self._closed:
                self._start_fresh(quiz_id, credential, access_key)
        except Exception:
            with self._lock:
                if self._state is SessionState.RESTORING:
                    self._state = SessionState.UNINITIALIZED
            raise

        with self._lock:
            if self._closed:
                logger.info("Session for quiz %s was closed while opening", quiz_id)
                return restored
            self._state = SessionState.ACTIVE
        if self._timer is not None:
            self._timer.start()
        logger.info(
            "Attempt %s for quiz %s is active (%s)",
            self._attempt.id if self._attempt else None,
            quiz_id,
            "restored" if restored else "new",
        )
        return restored

    def finish(self, credential: str | None = None) -> Attempt | None:
        """Submit the answers once; later calls return the stored result."""
        with self._lock:
            if self._state in (SessionState.SUBMITTING, SessionState.SUBMITTED):
                return self._result
            if self._state not in (SessionState.ACTIVE, SessionState.EXPIRED):
                raise SessionStateError(f"Cannot finish a session in state {self._state.name}.")
            previous_state = self._state
            self._state = SessionState.SUBMITTING
            submission = self._answers.to_submission()
            attempt_id = self._attempt.id

        logger.info("Submitting attempt %s with %d answered questions", attempt_id, len(submission))
        try:
            result = self._api.finish_attempt(credential or self._credential, attempt_id, submission)
        except Exception as exc:
            with self._lock:
                # The deadline passed while this submission was in flight.
                expiry_pending = self._expiry_pending
                self._expiry_pending = False
                if self._state is SessionState.SUBMITTING:
                    self._state = SessionState.EXPIRED if expiry_pending else previous_state
                self.last_error = exc
                submit_now = expiry_pending and not self._closed
            if not submit_now:
                raise
            logger.info("Attempt %s expired during a failed submission, submitting automatically", attempt_id)
            try:
                return self.finish(credential)
            except QuizTakerError as retry_exc:
                logger.warning("Automatic submission of attempt %s failed: %s", attempt_id, retry_exc)
            raise

        with self._lock:
            self._state = SessionState.SUBMITTED
            self._result = result
            self._expiry_pending = False
            self.last_error = None
        if self._timer is not None:
            self._timer.cancel()
        self._checkpoints.clear(self._quiz.id, self._identity)
        return result

    def abandon(self) -> None:
        """Discard the attempt without submitting it."""
        with self._lock:
            if self._state in (SessionState.SUBMITTING, SessionState.SUBMITTED):
                raise SessionStateError("Cannot abandon a submitted attempt.")
            self._state = SessionState.ABANDONED
            quiz = self._quiz
            self._answers.clear()
            self._visited.clear()
        if self._timer is not None:
            self._timer.cancel()
        if quiz is not None:
            self._checkpoints.clear(quiz.id, self._identity)
        logger.info("Attempt abandoned")

    def close(self) -> None:
        """Tear the session down, keeping the checkpoint for a later restore."""
        with self._lock:
            self._closed = True
            if self._state in (
                SessionState.UNINITIALIZED,
                SessionState.RESTORING,
                SessionState.ACTIVE,
                SessionState.EXPIRED,
            ):
                self._state = SessionState.CLOSED
        if self._timer is not None:
            self._timer.cancel()

    def tick(self) -> int | None:
        """Recompute the remaining time now, firing expiry if the deadline passed."""
        if self._timer is None or self._closed:
            return None
        return self._timer.tick()

    # --- Answers & navigation ---

    def save_answer(self, question_id: int, option_ids: list[int]) -> list[int]:
        with self._lock:
            self._require_active()
            selection = self._answers.save_answer(question_id, option_ids)
            self._write_checkpoint()
        return selection

    def toggle_option(self, question_id: int, option_id: int) -> list[int]:
        with self._lock:
            self._require_active()
            selection = self._answers.toggle_option(question_id, option_id)
            self._write_checkpoint()
        return selection

    def mark_question_as_visited(self, question_id: int) -> None:
        with self._lock:
            self._require_active()
            self._visited.add(question_id)
            self._write_checkpoint()

    def go_to_next_question(self) -> Question | None:
        return self.go_to_question(self._current_index + 1)

    def go_to_previous_question(self) -> Question | None:
        return self.go_to_question(self._current_index - 1)

    def go_to_question(self, index: int) -> Question | None:
        with self._lock:
            self._require_active()
            if not self._questions:
                return None
            leaving = self._questions[self._current_index]
            self._visited.add(leaving.id)
            self._current_index = min(max(index, 0), len(self._questions) - 1)
            current = self._questions[self._current_index]
            self._visited.add(current.id)
            self._write_checkpoint()
        return current

    # --- Projections ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def attempt(self) -> Attempt | None:
        return self._attempt

    @property
    def quiz(self) -> Quiz | None:
        return self._quiz

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    @property
    def result(self) -> Attempt | None:
        return self._result

    @property
    def guest_session_id(self) -> str | None:
        return self._guest_session_id

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Question | None:
        if 0 <= self._current_index < len(self._questions):
            return self._questions[self._current_index]
        return None

    @property
    def current_answer(self) -> list[int]:
        question = self.current_question
        return self._answers.get_answer(question.id) if question else []

    @property
    def answers(self) -> dict[int, list[int]]:
        return self._answers.get_answers()

    @property
    def progress(self) -> Progress:
        return Progress(current=self._current_index + 1, total=len(self._questions))

    @property
    def answered_count(self) -> int:
        return self._answers.answered_count()

    @property
    def has_time_limit(self) -> bool:
        return bool(self._quiz and self._quiz.time_limit_seconds and self._quiz.time_limit_seconds > 0)

    @property
    def time_left(self) -> int | None:
        if self._timer is None:
            return None
        return self._timer.remaining_seconds()

    @property
    def visited_questions(self) -> frozenset[int]:
        return frozenset(self._visited)

    # --- Internals ---

    def _restore(self, quiz_id: int, credential: str | None, access_key: str | None) -> bool:
        checkpoint = self._checkpoints.load(quiz_id, self._identity)
        if checkpoint is None:
            return False
        if checkpoint.quiz_id != quiz_id or checkpoint.is_expired(self._clock()):
            logger.info("Discarding stale checkpoint for quiz %s", quiz_id)
            self._checkpoints.clear(quiz_id, self._identity)
            return False

        try:
            attempt = self._api.get_attempt_by_id(checkpoint.attempt_id, credential)
            quiz, questions = self._load_quiz(quiz_id, credential, access_key)
        except QuizTakerError as exc:
            logger.warning("Could not restore attempt %s: %s", checkpoint.attempt_id, exc)
            self._checkpoints.clear(quiz_id, self._identity)
            return False
        if attempt.completed_at is not None:
            logger.info("Checkpointed attempt %s was already submitted", attempt.id)
            self._checkpoints.clear(quiz_id, self._identity)
            return False
        if self._closed:
            return False

        self._bind(attempt, quiz, questions, checkpoint.deadline_timestamp)
        self._answers.load(checkpoint.answers)
        known_ids = {question.id for question in questions}
        self._visited = {question_id for question_id in checkpoint.visited_question_ids if question_id in known_ids}
        if questions:
            self._current_index = min(max(checkpoint.current_index, 0), len(questions) - 1)
        self._guest_session_id = checkpoint.guest_session_id or attempt.guest_session_id
        return True

    def _start_fresh(self, quiz_id: int, credential: str | None, access_key: str | None) -> None:
        # Quiz data is loaded first so a failed read never leaves an orphan attempt behind.
        quiz, questions = self._load_quiz(quiz_id, credential, access_key)
        if self._closed:
            return
        attempt = self._api.start_attempt(credential, quiz_id, access_key)
        deadline = None
        if quiz.time_limit_seconds:
            deadline = self._clock() + quiz.time_limit_seconds
        self._bind(attempt, quiz, questions, deadline)
        if questions:
            self._visited = {questions[0].id}
        self._guest_session_id = attempt.guest_session_id
        with self._lock:
            self._write_checkpoint()

    def _load_quiz(
        self, quiz_id: int, credential: str | None, access_key: str | None
    ) -> tuple[Quiz, list[Question]]:
        quiz = self._api.get_quiz_by_id(quiz_id, credential, access_key)
        questions = self._api.get_quiz_questions(quiz_id, access_key)
        return quiz, list(questions)

    def _bind(self, attempt: Attempt, quiz: Quiz, questions: list[Question], deadline: float | None) -> None:
        self._attempt = attempt
        self._quiz = quiz
        self._questions = questions
        self._answers = AnswerStore(questions)
        self._current_index = 0
        self._deadline = deadline
        self._timer = AttemptTimer(
            deadline,
            on_tick=self._handle_tick,
            on_expire=self._handle_expiry,
            clock=self._clock,
            interval=self._tick_interval,
        )

    def _handle_tick(self, remaining: int) -> None:
        if self._on_tick is not None and not self._closed:
            self._on_tick(remaining)

    def _handle_expiry(self) -> None:
        with self._lock:
            if self._state is SessionState.SUBMITTING:
                self._expiry_pending = True
                return
            if self._closed or self._state is not SessionState.ACTIVE:
                return
            self._state = SessionState.EXPIRED
        logger.info("Time is up for attempt %s, submitting automatically", self._attempt.id)
        try:
            self.finish()
        except QuizTakerError as exc:
            logger.warning("Automatic submission of attempt %s failed: %s", self._attempt.id, exc)

    def _require_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise SessionStateError(f"Session is not active (state {self._state.name}).")

    def _write_checkpoint(self) -> None:
        """Persist the in-flight attempt; callers hold the session lock."""
        if self._attempt is None or self._quiz is None:
            return
        if self._state not in (SessionState.RESTORING, SessionState.ACTIVE):
            return
        checkpoint = AttemptCheckpoint(
            attempt_id=self._attempt.id,
            quiz_id=self._quiz.id,
            deadline_timestamp=self._deadline,
            answers=self._answers.get_answers(),
            visited_question_ids=sorted(self._visited),
            current_index=self._current_index,
            guest_session_id=self._guest_session_id,
        )
        try:
            self._checkpoints.save(checkpoint, self._identity)
        except OSError as exc:
            logger.warning("Could not write checkpoint for attempt %s: %s", self._attempt.id, exc)
