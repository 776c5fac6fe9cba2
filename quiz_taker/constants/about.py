"""Static metadata describing QuizTaker."""

APP_NAME = "QuizTaker"
APP_VERSION = "0.1"
