import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using %s", name, raw, default)
        return default


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name) or default
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./app.db"
    groq_api_key: str | None = None
    quiz_model_name: str = "llama-3.3-70b-versatile"
    guard_model_name: str = "meta-llama/llama-guard-4-12b"
    source_char_limit: int = 4000
    min_text_length: int = 50
    question_count: int = 10
    generation_timeout_seconds: int = 600
    result_retention_days: int = 15
    log_level: str = "INFO"
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings from the environment (and .env). Cached; call get_settings.cache_clear() to reload."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./app.db"),
        groq_api_key=os.getenv("GROQ_API_KEY") or None,
        quiz_model_name=os.getenv("QUIZ_MODEL_NAME", "llama-3.3-70b-versatile"),
        guard_model_name=os.getenv("QUIZ_GUARD_MODEL_NAME", "meta-llama/llama-guard-4-12b"),
        source_char_limit=_env_int("QUIZ_SOURCE_CHAR_LIMIT", 4000),
        min_text_length=_env_int("QUIZ_MIN_TEXT_LENGTH", 50),
        question_count=_env_int("QUIZ_QUESTION_COUNT", 10),
        generation_timeout_seconds=_env_int("QUIZ_GENERATION_TIMEOUT_SECONDS", 600),
        result_retention_days=_env_int("RESULT_RETENTION_DAYS", 15),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", "*"),
    )
