from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from quiz_taker.client.api_client import QuizApiClient, create_http_client
from quiz_taker.constants.network_constants import API_BASE_URL_ENV_VAR, DEFAULT_API_BASE_URL
from quiz_taker.core.errors import (
    AnswerValidationError,
    ApiError,
    AuthRequiredError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
)
from quiz_taker.core.models import AnswerSubmission, QuestionType


def test_start_attempt_sends_bearer_and_access_key(api_client, backend):
    attempt = api_client.start_attempt("token", 8, "OTHER1")

    assert attempt.id == 100
    assert attempt.quiz_id == 8
    assert attempt.user_id == 1
    assert attempt.started_at == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert backend.state.requests[-1] == ("POST", "/attempt/8/start", {"accessKey": "OTHER1"}, "Bearer token")


def test_guest_start_returns_guest_session_without_auth_header(api_client, backend):
    attempt = api_client.start_attempt(None, 7)

    assert attempt.guest_session_id == "guest-abc"
    assert backend.state.requests[-1] == ("POST", "/attempt/7/start", {}, None)


def test_finish_posts_camel_case_answers(api_client, backend):
    result = api_client.finish_attempt(
        "token",
        100,
        [AnswerSubmission(question_id=1, selected_option_ids=[12]), AnswerSubmission(2, [21, 22])],
    )

    assert backend.state.finished == [
        (100, [{"questionId": 1, "selectedOptionIds": [12]}, {"questionId": 2, "selectedOptionIds": [21, 22]}])
    ]
    assert result.score == 2
    assert result.completed_at == datetime(2024, 1, 1, 9, 5, tzinfo=timezone.utc)


def test_quiz_and_questions_are_parsed(api_client, backend):
    quiz = api_client.get_quiz_by_id(8, "token", "OTHER1")
    questions = api_client.get_quiz_questions(8, "OTHER1")

    assert quiz.time_limit_seconds == 600
    assert quiz.questions_count == 3
    assert not quiz.is_public
    assert [question.type for question in questions] == [
        QuestionType.SINGLE_CHOICE,
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.SINGLE_CHOICE,
    ]
    assert questions[1].option_ids() == [21, 22, 23]
    assert backend.state.requests[-1] == ("GET", "/quiz/8/questions", {"accessKey": "OTHER1"}, None)


def test_answers_are_scoped_to_guest_session(api_client, backend):
    records = api_client.fetch_attempt_answers(1, guest_session_id="guest-abc")

    assert [record.chosen_option_id for record in records] == [12, 21, 23]
    assert backend.state.requests[-1][2] == {"guestSessionId": "guest-abc"}


def test_leaderboard_returns_raw_rows(api_client):
    rows = api_client.fetch_leaderboard(7, "token")

    assert len(rows) == 5
    attempt = QuizApiClient.parse_leaderboard_row(rows[2])
    assert attempt.completed_at.tzinfo is timezone.utc


def test_user_attempts_need_a_credential(api_client, backend):
    with pytest.raises(AuthRequiredError):
        api_client.get_user_attempts(None, 101)
    assert backend.state.requests == []

    attempts = api_client.get_user_attempts("token", 101)
    assert [attempt.id for attempt in attempts] == [1, 2]


def test_connect_resolves_quiz_id(api_client):
    assert api_client.connect_to_quiz_by_code("ABC123") == 7


@pytest.mark.parametrize(
    ("call", "error"),
    [
        (lambda client: client.get_user_attempts("stale", 101), AuthRequiredError),
        (lambda client: client.fetch_leaderboard(7, "stale"), ForbiddenError),
        (lambda client: client.get_attempt_by_id(5), NotFoundError),
        (lambda client: client.connect_to_quiz_by_code("NOPE"), NotFoundError),
    ],
)
def test_status_codes_map_to_errors(api_client, call, error):
    with pytest.raises(error):
        call(api_client)


def test_bad_request_is_a_validation_error(api_client):
    with pytest.raises(AnswerValidationError):
        api_client._request("POST", "/Attempt/100/stop", credential="token", json={"answers": None})


def test_unexpected_status_keeps_code(api_client):
    with pytest.raises(ApiError) as excinfo:
        api_client._request("GET", "/crash")

    assert excinfo.value.status_code == 503


def test_invalid_json_is_an_api_error(api_client):
    with pytest.raises(ApiError):
        api_client._request("GET", "/broken")


def test_unexpected_payload_is_an_api_error():
    with pytest.raises(ApiError):
        QuizApiClient.parse_leaderboard_row({"id": "abc"})


def test_transport_failure_is_a_network_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = QuizApiClient(httpx.Client(base_url="http://quiz.invalid/api", transport=httpx.MockTransport(refuse)))

    with pytest.raises(NetworkError):
        client.get_quiz_by_id(7)


def test_http_client_base_url(monkeypatch):
    monkeypatch.delenv(API_BASE_URL_ENV_VAR, raising=False)
    with create_http_client() as client:
        assert str(client.base_url) == DEFAULT_API_BASE_URL + "/"
        assert client.timeout.read == 10.0
        assert client.headers["User-Agent"].startswith("QuizTaker/")

    monkeypatch.setenv(API_BASE_URL_ENV_VAR, "https://quiz.example.com/api")
    with create_http_client() as client:
        assert str(client.base_url) == "https://quiz.example.com/api/"

    with create_http_client("http://override/api", timeout=2.5) as client:
        assert str(client.base_url) == "http://override/api/"
        assert client.timeout.read == 2.5
