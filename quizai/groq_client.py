import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

import groq
from groq import Groq
from langchain_groq import ChatGroq

from quizai.config import get_settings
from quizai.errors import ContentBlockedError, QuotaExceededError, UpstreamModelError

logger = logging.getLogger(__name__)


class HarmCategory(str, Enum):
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    SEXUALLY_EXPLICIT = "sexually_explicit"
    DANGEROUS_CONTENT = "dangerous_content"


class SafetyThreshold(str, Enum):
    BLOCK_NONE = "block_none"
    BLOCK_ONLY_HIGH = "block_only_high"
    BLOCK_MEDIUM_AND_ABOVE = "block_medium_and_above"
    BLOCK_LOW_AND_ABOVE = "block_low_and_above"


# Llama Guard hazard codes reported for each category
GUARD_CODES: Dict[HarmCategory, Set[str]] = {
    HarmCategory.HARASSMENT: {"S5", "S7"},
    HarmCategory.HATE_SPEECH: {"S10"},
    HarmCategory.SEXUALLY_EXPLICIT: {"S3", "S4", "S12"},
    HarmCategory.DANGEROUS_CONTENT: {"S1", "S2", "S9", "S11"},
}


def default_safety_thresholds() -> Dict[HarmCategory, SafetyThreshold]:
    return {category: SafetyThreshold.BLOCK_MEDIUM_AND_ABOVE for category in HarmCategory}


@dataclass(frozen=True)
class GenerationSettings:
    temperature: float = 0.3
    top_p: float = 0.8
    top_k: int = 40
    max_output_tokens: int = 8192
    response_format: str = "json"
    safety_thresholds: Dict[HarmCategory, SafetyThreshold] = field(default_factory=default_safety_thresholds)

    def active_categories(self) -> List[HarmCategory]:
        return [
            category for category, threshold in self.safety_thresholds.items()
            if threshold != SafetyThreshold.BLOCK_NONE
        ]


class QuizModel(ABC):
    """Generative model used to write quizzes."""

    @abstractmethod
    def complete(self, prompt: str, settings: Optional[GenerationSettings] = None) -> str:
        raise NotImplementedError


def parse_guard_verdict(content: str) -> Set[str]:
    """Return the hazard codes of a Llama Guard reply; empty when the text is safe."""
    lines = [line.strip() for line in (content or "").strip().splitlines() if line.strip()]
    if not lines or lines[0].lower() == "safe":
        return set()
    codes = set()
    for line in lines[1:]:
        codes.update(code.strip().upper() for code in line.split(",") if code.strip())
    return codes or {"UNSPECIFIED"}


def translate_upstream_error(error: Exception) -> UpstreamModelError:
    message = str(error)
    lowered = message.lower()
    if isinstance(error, groq.RateLimitError) or "quota" in lowered or "rate limit" in lowered:
        return QuotaExceededError("API quota exceeded. Please try again later.")
    return UpstreamModelError(f"AI API Error: {message}")


class GroqQuizModel(QuizModel):
    """Groq-backed quiz model: ChatGroq for generation plus a Llama Guard pass"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        guard_model: Optional[str] = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.groq_api_key
        if not self.api_key:
            raise ValueError("GROQ_API_KEY is not set. Please configure your API key.")

        self.model_name = model_name or settings.quiz_model_name
        self.guard_model = settings.guard_model_name if guard_model is None else guard_model

        # raw client for the guard model
        self.client = Groq(api_key=self.api_key)

    def _build_llm(self, settings: GenerationSettings) -> ChatGroq:
        model_kwargs = {"top_p": settings.top_p}
        if settings.response_format == "json":
            model_kwargs["response_format"] = {"type": "json_object"}
        if settings.top_k:
            logger.debug("top_k=%s is not supported by Groq; ignoring", settings.top_k)
        return ChatGroq(
            groq_api_key=self.api_key,
            model_name=self.model_name,
            temperature=settings.temperature,
            max_tokens=settings.max_output_tokens,
            max_retries=0,
            model_kwargs=model_kwargs,
        )

    def complete(self, prompt: str, settings: Optional[GenerationSettings] = None) -> str:
        settings = settings or GenerationSettings()
        llm = self._build_llm(settings)
        try:
            result = llm.invoke(prompt)
        except groq.APIError as e:
            logger.warning("Groq completion failed: %s", e)
            raise translate_upstream_error(e) from e

        content = result.content if isinstance(result.content, str) else str(result.content)
        content = content.strip()

        if self.guard_model and settings.active_categories():
            self._screen(content, settings)
        return content

    def _screen(self, content: str, settings: GenerationSettings) -> None:
        try:
            response = self.client.chat.completions.create(
                model=self.guard_model,
                messages=[{"role": "user", "content": content}],
            )
        except groq.APIError as e:
            logger.warning("Groq guard check failed: %s", e)
            raise translate_upstream_error(e) from e

        codes = parse_guard_verdict(response.choices[0].message.content)
        if not codes:
            return
        blocked = [
            category.value for category in settings.active_categories()
            if "UNSPECIFIED" in codes or codes & GUARD_CODES[category]
        ]
        if blocked:
            logger.warning("Generated content blocked by safety filter: %s (%s)", blocked, sorted(codes))
            raise ContentBlockedError(
                "Generated content was blocked by the safety filter: " + ", ".join(sorted(blocked))
            )
        logger.info("Guard flagged %s outside the configured categories; allowing", sorted(codes))
