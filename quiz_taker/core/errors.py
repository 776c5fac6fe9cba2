"""Exception hierarchy raised by the attempt engine and its API client."""

from __future__ import annotations


class QuizTakerError(Exception):
    """Base class for every error raised by quiz_taker."""


class AnswerValidationError(QuizTakerError):
    """Raised when a selection violates the question's answer rules."""


class AuthRequiredError(QuizTakerError):
    """Raised when an operation needs a credential that is missing or rejected."""


class ForbiddenError(QuizTakerError):
    """Raised when the caller's identity is not allowed to read a resource."""


class NotFoundError(QuizTakerError):
    """Raised when a quiz, question or attempt id has no backing record."""


class NetworkError(QuizTakerError):
    """Raised when the transport fails before a response is received."""


class ApiError(QuizTakerError):
    """Raised for any other unsuccessful response from the quiz API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionStateError(QuizTakerError):
    """Raised when a session operation is not allowed in the current state."""
