from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient
import pytest

from quiz_taker.client.api_client import QuizApiClient
from quiz_taker.core.errors import NotFoundError
from quiz_taker.core.models import AnswerSubmission, Attempt, Option, Question, QuestionType, Quiz
from quiz_taker.core.services.checkpoint_store import CheckpointRepository, MemoryKeyValueStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeQuizApi:
    """In-memory stand-in for QuizApiClient recording every call."""

    def __init__(self, quiz: Quiz, questions: list[Question]) -> None:
        self.quiz = quiz
        self.questions = questions
        self.calls: list[tuple[str, tuple]] = []
        self.attempts: dict[int, Attempt] = {}
        self.finish_error: Exception | None = None
        self.finish_hook = None
        self._next_attempt_id = 100

    def start_attempt(self, credential, quiz_id, access_key=None):
        self.calls.append(("start_attempt", (credential, quiz_id, access_key)))
        attempt = Attempt(id=self._next_attempt_id, quiz_id=quiz_id, user_id=1 if credential else None,
                          guest_session_id=None if credential else "guest-abc")
        self._next_attempt_id += 1
        self.attempts[attempt.id] = attempt
        return attempt

    def finish_attempt(self, credential, attempt_id, answers: list[AnswerSubmission]):
        self.calls.append(("finish_attempt", (credential, attempt_id, [a.to_payload() for a in answers])))
        if self.finish_hook is not None:
            self.finish_hook()
        if self.finish_error is not None:
            raise self.finish_error
        return Attempt(
            id=attempt_id,
            quiz_id=self.quiz.id,
            completed_at=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
            time_spent="00:05:00",
            score=len(answers),
        )

    def get_attempt_by_id(self, attempt_id, credential=None):
        self.calls.append(("get_attempt_by_id", (attempt_id, credential)))
        if attempt_id not in self.attempts:
            raise NotFoundError(f"attempt {attempt_id}")
        return self.attempts[attempt_id]

    def get_quiz_by_id(self, quiz_id, credential=None, access_key=None):
        self.calls.append(("get_quiz_by_id", (quiz_id, credential, access_key)))
        return self.quiz

    def get_quiz_questions(self, quiz_id, access_key=None):
        self.calls.append(("get_quiz_questions", (quiz_id, access_key)))
        return list(self.questions)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_questions() -> list[Question]:
    return [
        Question(
            id=1,
            text="2 + 2?",
            type=QuestionType.SINGLE_CHOICE,
            options=[Option(id=11, text="3"), Option(id=12, text="4"), Option(id=13, text="5")],
            order=1,
        ),
        Question(
            id=2,
            text="Primes?",
            type=QuestionType.MULTIPLE_CHOICE,
            options=[Option(id=21, text="2"), Option(id=22, text="3"), Option(id=23, text="4")],
            order=2,
        ),
        Question(
            id=3,
            text="Capital of France?",
            type=QuestionType.SINGLE_CHOICE,
            options=[Option(id=31, text="Paris"), Option(id=32, text="Lyon")],
            order=3,
        ),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def questions() -> list[Question]:
    return make_questions()


@pytest.fixture
def timed_quiz() -> Quiz:
    return Quiz(id=7, title="Arithmetic", questions_count=3, time_limit_seconds=600)


@pytest.fixture
def fake_api(timed_quiz, questions) -> FakeQuizApi:
    return FakeQuizApi(timed_quiz, questions)


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def checkpoints(kv_store) -> CheckpointRepository:
    return CheckpointRepository(kv_store)


GUEST_SESSION_ID = "guest-abc"

ACCESS_CODES = {"ABC123": 7, "OTHER1": 8}


def _leaderboard_rows() -> list[dict[str, object]]:
    return [
        {"id": 1, "userId": 101, "userName": "User1", "score": 3, "timeSpent": "00:02:00",
         "completedAt": "2024-01-01T10:00:00Z"},
        {"id": 2, "userId": 101, "userName": "User1", "score": 2, "timeSpent": "00:01:00",
         "completedAt": "2024-01-02T10:00:00Z"},
        {"id": 3, "userId": 102, "userName": "User2", "score": 1, "timeSpent": "00:03:00",
         "completedAt": "2024-01-03T10:00:00"},
        {"id": 4, "userId": None, "userName": "Guest", "score": 3, "timeSpent": "00:04:00",
         "completedAt": "2024-01-04T10:00:00Z"},
        {"id": 5, "userId": 103, "userName": "User3", "score": 0, "timeSpent": "00:00:00", "completedAt": None},
    ]


def _answer_rows(attempt_id: int) -> list[dict[str, object]]:
    rows = {
        1: [
            {"id": 1, "attemptId": 1, "questionId": 1, "chosenOptionId": 12, "isCorrect": True},
            {"id": 2, "attemptId": 1, "questionId": 2, "chosenOptionId": 21, "isCorrect": True},
            {"id": 3, "attemptId": 1, "questionId": 2, "chosenOptionId": 23, "isCorrect": False},
        ],
        3: [
            {"id": 4, "attemptId": 3, "questionId": 1, "chosenOptionId": 11, "isCorrect": False},
        ],
    }
    return rows.get(attempt_id, [])


def create_fake_backend() -> FastAPI:
    """Minimal quiz API used to exercise the HTTP client end to end."""
    app = FastAPI()
    app.state.requests = []
    app.state.finished = []
    app.state.next_attempt_id = 100

    def record(request: Request) -> str | None:
        authorization = request.headers.get("authorization")
        app.state.requests.append((request.method, request.url.path, dict(request.query_params), authorization))
        if authorization and authorization.startswith("Bearer "):
            return authorization.removeprefix("Bearer ")
        return None

    @app.post("/attempt/{quiz_id}/start")
    def start_attempt(quiz_id: int, request: Request):
        token = record(request)
        if quiz_id == 8 and request.query_params.get("accessKey") != "OTHER1":
            raise HTTPException(status_code=403)
        attempt_id = app.state.next_attempt_id
        app.state.next_attempt_id += 1
        return {
            "id": attempt_id,
            "quizId": quiz_id,
            "userId": 1 if token else None,
            "guestSessionId": None if token else GUEST_SESSION_ID,
            "startedAt": "2024-01-01T09:00:00Z",
        }

    @app.post("/Attempt/{attempt_id}/stop")
    def finish_attempt(attempt_id: int, request: Request, body: dict):
        record(request)
        answers = body.get("answers")
        if not isinstance(answers, list):
            raise HTTPException(status_code=400, detail="answers missing")
        app.state.finished.append((attempt_id, answers))
        return {
            "id": attempt_id,
            "quizId": 7,
            "completedAt": "2024-01-01T09:05:00",
            "timeSpent": "00:05:00",
            "score": len(answers),
        }

    @app.get("/Attempt/quiz/{quiz_id}/leaderboard")
    def leaderboard(quiz_id: int, request: Request):
        token = record(request)
        if token == "token":
            return _leaderboard_rows()
        guest_session_id = request.query_params.get("guestSessionId")
        if token is None and guest_session_id == GUEST_SESSION_ID:
            return [{"username": "User1", "percentage": 3, "timeTaken": "00:02:00",
                     "finishedAt": "2024-01-01T10:00:00Z"}]
        raise HTTPException(status_code=403 if token else 401)

    @app.get("/Attempt/{attempt_id}")
    def get_attempt(attempt_id: int, request: Request):
        record(request)
        if attempt_id < 100 or attempt_id >= app.state.next_attempt_id:
            raise HTTPException(status_code=404)
        return {"id": attempt_id, "quizId": 7, "startedAt": "2024-01-01T09:00:00Z"}

    @app.get("/attempt/{attempt_id}/answers")
    def attempt_answers(attempt_id: int, request: Request):
        token = record(request)
        if token == "token" or (token is None and request.query_params.get("guestSessionId") == GUEST_SESSION_ID):
            return _answer_rows(attempt_id)
        raise HTTPException(status_code=403)

    @app.get("/User/{user_id}/attempts")
    def user_attempts(user_id: int, request: Request):
        if record(request) != "token":
            raise HTTPException(status_code=401)
        return [row | {"quizId": 7} for row in _leaderboard_rows() if row["userId"] == user_id]

    @app.get("/Quiz/{quiz_id}")
    def get_quiz(quiz_id: int, request: Request):
        record(request)
        if quiz_id not in (7, 8):
            raise HTTPException(status_code=404)
        return {"id": quiz_id, "title": "Arithmetic", "questionsCount": 3, "timeLimit": "00:10:00",
                "isPublic": quiz_id == 7}

    @app.get("/quiz/{quiz_id}/questions")
    def get_questions(quiz_id: int, request: Request):
        record(request)
        return [
            {"id": 1, "text": "2 + 2?", "type": 0, "order": 1,
             "options": [{"id": 11, "text": "3"}, {"id": 12, "text": "4"}, {"id": 13, "text": "5"}]},
            {"id": 2, "text": "Primes?", "type": "MultipleChoice", "order": 2,
             "options": [{"id": 21, "text": "2"}, {"id": 22, "text": "3"}, {"id": 23, "text": "4"}]},
            {"id": 3, "text": "Capital of France?", "type": 0, "order": 3,
             "options": [{"id": 31, "text": "Paris"}, {"id": 32, "text": "Lyon"}]},
        ]

    @app.get("/quiz/connect/{code}")
    def connect(code: str, request: Request):
        record(request)
        if code == "LOCKED":
            raise HTTPException(status_code=403)
        if code not in ACCESS_CODES:
            raise HTTPException(status_code=404)
        return {"quizId": ACCESS_CODES[code]}

    @app.get("/broken")
    def broken(request: Request):
        record(request)
        return PlainTextResponse("not json")

    @app.get("/crash")
    def crash(request: Request):
        record(request)
        raise HTTPException(status_code=503, detail="maintenance")

    return app


@pytest.fixture
def backend() -> FastAPI:
    return create_fake_backend()


@pytest.fixture
def api_client(backend) -> QuizApiClient:
    return QuizApiClient(TestClient(backend))
