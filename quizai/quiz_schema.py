"""Schema for the quiz JSON written by the generative model.

The model is asked for a JSON array of questions. Everything it returns goes
through :func:`parse_quiz_response` before it may be stored, so a quiz in the
database always has four options, a valid correct label and a remediation text
for every wrong option.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from quizai.errors import QuizValidationError
from quizai.models import OPTION_LABELS

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

FALLBACK_EXPLANATION = (
    "This option is incorrect. The correct answer is {correct}. "
    "Please review the lecture material for more details."
)


class GeneratedQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: Dict[str, str]
    correct_answer: str
    explanations: Dict[str, Optional[str]]
    correct_answer_explanation: str = Field(alias="correctAnswerExplanation")

    @field_validator("question", "correct_answer_explanation")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _valid_label(cls, value: Any) -> str:
        label = value.strip().upper() if isinstance(value, str) else value
        if label not in OPTION_LABELS:
            raise ValueError(f"correct_answer must be one of {', '.join(OPTION_LABELS)}")
        return label

    @field_validator("options")
    @classmethod
    def _four_distinct_options(cls, value: Dict[str, str]) -> Dict[str, str]:
        options = {str(k).strip().upper(): v.strip() for k, v in value.items()}
        if sorted(options) != list(OPTION_LABELS):
            raise ValueError("options must have exactly the labels A, B, C and D")
        if any(not text for text in options.values()):
            raise ValueError("options must not be blank")
        if len({text.lower() for text in options.values()}) != len(options):
            raise ValueError("options must be distinct")
        return {label: options[label] for label in OPTION_LABELS}

    @model_validator(mode="after")
    def _complete_explanations(self) -> "GeneratedQuestion":
        given = {str(k).strip().upper(): (v or "").strip() for k, v in self.explanations.items()}
        completed = {}
        for label in OPTION_LABELS:
            if label == self.correct_answer:
                completed[label] = ""
            elif given.get(label):
                completed[label] = given[label]
            else:
                completed[label] = FALLBACK_EXPLANATION.format(correct=self.correct_answer)
        self.explanations = completed
        return self

    def missing_explanations(self) -> List[str]:
        return [
            label for label, text in self.explanations.items()
            if label != self.correct_answer and text.startswith("This option is incorrect. The correct answer is")
        ]


def strip_code_fence(text: str) -> str:
    content = (text or "").strip()
    match = _FENCE_RE.match(content)
    if match:
        return match.group(1).strip()
    return content


def _describe(index: int, error: ValidationError) -> str:
    number = index + 1
    missing = [str(err["loc"][0]) for err in error.errors() if err["type"] == "missing" and err["loc"]]
    if missing:
        return f"Question {number} is missing required fields: {', '.join(missing)}"
    for err in error.errors():
        if err["loc"] and err["loc"][0] == "correct_answer":
            return f"Question {number} has invalid correct_answer"
        if err["type"] == "model_type":
            return f"Question {number} is not an object"
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "question"
    return f"Question {number} is invalid ({location}): {first['msg']}"


def parse_quiz_response(text: str) -> List[GeneratedQuestion]:
    """Parse and validate the model output, raising QuizValidationError on any defect."""
    content = strip_code_fence(text)
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise QuizValidationError(f"Response is not valid JSON: {e.msg}") from e

    # JSON object mode wraps the array in {"questions": [...]}
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if not isinstance(data, list):
        raise QuizValidationError("Response is not an array")
    if not data:
        raise QuizValidationError("No questions generated")

    questions = []
    for index, item in enumerate(data):
        try:
            question = GeneratedQuestion.model_validate(item)
        except ValidationError as e:
            raise QuizValidationError(_describe(index, e)) from e
        missing = question.missing_explanations()
        if missing:
            logger.warning("Question %d: missing explanation for wrong answer(s) %s", index + 1, missing)
        questions.append(question)
    return questions
