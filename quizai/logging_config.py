"""Logging configuration for the QuizAI service."""

import logging

from quizai.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure root logging once and return the package logger."""
    global _configured
    if not _configured:
        logging.basicConfig(
            level=(level or get_settings().log_level),
            format=LOG_FORMAT,
        )
        _configured = True
    return logging.getLogger("quizai")
