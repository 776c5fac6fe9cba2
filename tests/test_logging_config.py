from __future__ import annotations

import logging

from quiz_taker.utils.logging_config import configure_logging


def test_configure_logging_returns_engine_logger(caplog):
    with caplog.at_level(logging.INFO, logger="quiz_taker"):
        logger = configure_logging()

    assert logger.name == "quiz_taker"
    assert "QuizTaker" in caplog.text
    assert logging.getLogger("httpx").level == logging.WARNING


def test_explicit_level_wins_over_environment(monkeypatch):
    monkeypatch.setenv("QUIZ_TAKER_LOG_LEVEL", "debug")

    assert configure_logging(logging.ERROR).name == "quiz_taker"
