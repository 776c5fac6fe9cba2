"""Network configuration constants for the quiz API client."""

DEFAULT_API_BASE_URL: str = "http://localhost:5000/api"
API_BASE_URL_ENV_VAR: str = "QUIZ_TAKER_API_BASE_URL"
REQUEST_TIMEOUT_SECONDS: float = 10.0
