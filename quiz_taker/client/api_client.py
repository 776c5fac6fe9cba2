"""HTTP client for the quiz API endpoints the attempt engine consumes."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from quiz_taker.constants.about import APP_NAME, APP_VERSION
from quiz_taker.constants.network_constants import (
    API_BASE_URL_ENV_VAR,
    DEFAULT_API_BASE_URL,
    REQUEST_TIMEOUT_SECONDS,
)
from quiz_taker.client.schemas import (
    AnswerRecordSchema,
    AttemptSchema,
    FinishAttemptPayload,
    QuestionSchema,
    QuizConnection,
    QuizSchema,
)
from quiz_taker.core.errors import (
    AnswerValidationError,
    ApiError,
    AuthRequiredError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
)
from quiz_taker.core.models import AnswerRecord, AnswerSubmission, Attempt, Question, Quiz

logger = logging.getLogger(__name__)


def create_http_client(base_url: str | None = None, timeout: float = REQUEST_TIMEOUT_SECONDS) -> httpx.Client:
    """Build the shared HTTP client, honouring the base URL environment override."""
    resolved = base_url or os.getenv(API_BASE_URL_ENV_VAR) or DEFAULT_API_BASE_URL
    return httpx.Client(
        base_url=resolved,
        timeout=timeout,
        headers={"Content-Type": "application/json", "User-Agent": f"{APP_NAME}/{APP_VERSION}"},
    )


class QuizApiClient:
    """Thin wrapper translating quiz API calls into domain models and errors."""

    def __init__(self, http_client: httpx.Client) -> None:
        self._http = http_client

    # --- Attempts ---

    def start_attempt(self, credential: str | None, quiz_id: int, access_key: str | None = None) -> Attempt:
        data = self._request(
            "POST",
            f"/attempt/{quiz_id}/start",
            credential=credential,
            params={"accessKey": access_key},
            json={},
        )
        return _parse(AttemptSchema, data).to_model()

    def finish_attempt(
        self,
        credential: str | None,
        attempt_id: int,
        answers: list[AnswerSubmission],
    ) -> Attempt:
        payload = FinishAttemptPayload.from_submission(answers)
        data = self._request(
            "POST",
            f"/Attempt/{attempt_id}/stop",
            credential=credential,
            json=payload.model_dump(by_alias=True),
        )
        return _parse(AttemptSchema, data).to_model()

    def get_attempt_by_id(self, attempt_id: int, credential: str | None = None) -> Attempt:
        data = self._request("GET", f"/Attempt/{attempt_id}", credential=credential)
        return _parse(AttemptSchema, data).to_model()

    def fetch_attempt_answers(
        self,
        attempt_id: int,
        credential: str | None = None,
        guest_session_id: str | None = None,
    ) -> list[AnswerRecord]:
        data = self._request(
            "GET",
            f"/attempt/{attempt_id}/answers",
            credential=credential,
            params={"guestSessionId": guest_session_id},
        )
        return [_parse(AnswerRecordSchema, row).to_model() for row in _as_list(data)]

    def get_user_attempts(self, credential: str | None, user_id: int) -> list[Attempt]:
        if not credential:
            raise AuthRequiredError("A credential is required to list user attempts.")
        data = self._request("GET", f"/User/{user_id}/attempts", credential=credential)
        return [_parse(AttemptSchema, row).to_model() for row in _as_list(data)]

    def fetch_leaderboard(
        self,
        quiz_id: int,
        credential: str | None = None,
        guest_session_id: str | None = None,
    ) -> list[dict[str, Any]]:
        data = self._request(
            "GET",
            f"/Attempt/quiz/{quiz_id}/leaderboard",
            credential=credential,
            params={"guestSessionId": guest_session_id},
        )
        return [row for row in _as_list(data) if isinstance(row, dict)]

    @staticmethod
    def parse_leaderboard_row(row: dict[str, Any]) -> Attempt:
        return _parse(AttemptSchema, row).to_model()

    # --- Quizzes ---

    def get_quiz_by_id(self, quiz_id: int, credential: str | None = None, access_key: str | None = None) -> Quiz:
        data = self._request("GET", f"/Quiz/{quiz_id}", credential=credential, params={"accessKey": access_key})
        return _parse(QuizSchema, data).to_model()

    def get_quiz_questions(self, quiz_id: int, access_key: str | None = None) -> list[Question]:
        data = self._request("GET", f"/quiz/{quiz_id}/questions", params={"accessKey": access_key})
        return [_parse(QuestionSchema, row).to_model() for row in _as_list(data)]

    def connect_to_quiz_by_code(self, code: str) -> int:
        """Resolve a private access code to the quiz it unlocks."""
        data = self._request("GET", f"/quiz/connect/{code}")
        return _parse(QuizConnection, data).quiz_id

    # --- Transport ---

    def _request(
        self,
        method: str,
        path: str,
        *,
        credential: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {credential}"} if credential else {}
        query = {key: value for key, value in (params or {}).items() if value is not None}
        try:
            response = self._http.request(method, path, headers=headers, params=query or None, json=json)
        except httpx.TransportError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            _raise_for_status(response, f"{method} {path}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"{method} {path} returned invalid JSON.", response.status_code) from exc


def _raise_for_status(response: httpx.Response, action: str) -> None:
    status = response.status_code
    detail = response.text[:200]
    logger.warning("%s returned %s", action, status)
    if status == 401:
        raise AuthRequiredError(f"{action}: authentication required.")
    if status == 403:
        raise ForbiddenError(f"{action}: access forbidden.")
    if status == 404:
        raise NotFoundError(f"{action}: not found.")
    if status in (400, 422):
        raise AnswerValidationError(f"{action}: rejected ({detail}).")
    raise ApiError(f"{action}: unexpected status {status} ({detail}).", status)


def _as_list(data: Any) -> list[Any]:
    return data if isinstance(data, list) else []


def _parse(schema: type[BaseModel], data: Any) -> Any:
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise ApiError(f"Unexpected {schema.__name__} payload: {exc.error_count()} error(s).") from exc
