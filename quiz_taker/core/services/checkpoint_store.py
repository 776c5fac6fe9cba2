"""Client-local key/value persistence for attempt checkpoints and access keys."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from threading import Lock

from quiz_taker.constants.attempt_constants import (
    ACCESS_KEY_TEMPLATE,
    ANONYMOUS_IDENTITY,
    CHECKPOINT_KEY_TEMPLATE,
    GUEST_SESSION_KEY,
)

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String key/value contract the engine persists through."""

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """Keeps all entries in one JSON document on disk."""

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path.resolve()
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def _read(self) -> dict[str, str]:
        if not self._file_path.exists():
            return {}
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable store file %s", self._file_path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _write(self, data: dict[str, str]) -> None:
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


@dataclass(slots=True)
class AttemptCheckpoint:
    """Snapshot of an in-progress attempt that survives a reload."""

    attempt_id: int
    quiz_id: int
    deadline_timestamp: float | None = None
    answers: dict[int, list[int]] = field(default_factory=dict)
    visited_question_ids: list[int] = field(default_factory=list)
    current_index: int = 0
    guest_session_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "attemptId": self.attempt_id,
            "quizId": self.quiz_id,
            "deadlineTimestamp": self.deadline_timestamp,
            "answers": {str(question_id): list(ids) for question_id, ids in self.answers.items()},
            "visitedQuestionIds": list(self.visited_question_ids),
            "currentIndex": self.current_index,
            "guestSessionId": self.guest_session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> AttemptCheckpoint:
        deadline = data.get("deadlineTimestamp")
        raw_answers = data.get("answers") or {}
        return cls(
            attempt_id=int(data["attemptId"]),
            quiz_id=int(data["quizId"]),
            deadline_timestamp=float(deadline) if deadline is not None else None,
            answers={int(question_id): [int(option_id) for option_id in ids] for question_id, ids in raw_answers.items()},
            visited_question_ids=[int(question_id) for question_id in data.get("visitedQuestionIds") or []],
            current_index=int(data.get("currentIndex") or 0),
            guest_session_id=data.get("guestSessionId"),
        )

    def is_expired(self, now: float) -> bool:
        return self.deadline_timestamp is not None and self.deadline_timestamp <= now


class CheckpointRepository:
    """Reads and writes attempt checkpoints keyed by quiz and taker identity."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def load(self, quiz_id: int, identity: str | None) -> AttemptCheckpoint | None:
        raw = self._store.get(self._key(quiz_id, identity))
        if raw is None:
            return None
        try:
            return AttemptCheckpoint.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError, AttributeError):
            logger.warning("Discarding unreadable checkpoint for quiz %s", quiz_id)
            return None

    def save(self, checkpoint: AttemptCheckpoint, identity: str | None) -> None:
        self._store.set(self._key(checkpoint.quiz_id, identity), json.dumps(checkpoint.to_dict()))

    def clear(self, quiz_id: int, identity: str | None) -> None:
        self._store.delete(self._key(quiz_id, identity))

    @staticmethod
    def _key(quiz_id: int, identity: str | None) -> str:
        return CHECKPOINT_KEY_TEMPLATE.format(quiz_id=quiz_id, identity=identity or ANONYMOUS_IDENTITY)


class AccessKeyStore:
    """Longer-lived private-quiz access keys, one per quiz."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def grant(self, quiz_id: int, access_key: str) -> str:
        normalized = access_key.strip().upper()
        if not normalized:
            raise ValueError("Access key must not be empty.")
        self._store.set(self._key(quiz_id), normalized)
        return normalized

    def get(self, quiz_id: int) -> str | None:
        return self._store.get(self._key(quiz_id))

    def revoke(self, quiz_id: int) -> None:
        self._store.delete(self._key(quiz_id))

    @staticmethod
    def _key(quiz_id: int) -> str:
        return ACCESS_KEY_TEMPLATE.format(quiz_id=quiz_id)


class GuestSessionStore:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def get(self) -> str | None:
        return self._store.get(GUEST_SESSION_KEY)

    def set(self, guest_session_id: str) -> None:
        self._store.set(GUEST_SESSION_KEY, guest_session_id)

    def clear(self) -> None:
        self._store.delete(GUEST_SESSION_KEY)
