"""Attempt-related constants shared across the engine and its adapters."""

TICK_INTERVAL_SECONDS: float = 1.0
ZERO_TIME_SPAN: str = "00:00:00"
GUEST_USER_NAME: str = "Guest"
PARTICIPANT_PLACEHOLDER_TEMPLATE: str = "Participant {position}"
MOST_COMMON_WRONG_CHOICES_LIMIT: int = 3

CHECKPOINT_KEY_TEMPLATE: str = "quiz_attempt:{quiz_id}:{identity}"
ACCESS_KEY_TEMPLATE: str = "quiz_access_{quiz_id}"
GUEST_SESSION_KEY: str = "guestSessionId"
ANONYMOUS_IDENTITY: str = "anonymous"
