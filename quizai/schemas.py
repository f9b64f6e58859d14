from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request body that accepts camelCase keys (snake_case also works)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LectureIn(CamelModel):
    title: str = Field(..., description="Lecture title.")
    extracted_text: str = Field(..., description="Plain text extracted from the uploaded document.")
    class_id: Optional[int] = Field(default=None, description="Class the lecture belongs to.")
    original_file_name: Optional[str] = None
    mime_type: Optional[str] = None


class QuizActiveIn(CamelModel):
    is_active: bool = Field(..., description="Whether students may take the quiz.")


class AnswerIn(CamelModel):
    question_index: int = Field(..., description="0-based index of the question.")
    selected_option: str = Field(..., description="Chosen option label, A-D.")


class SubmissionIn(CamelModel):
    answers: List[AnswerIn] = Field(
        ...,
        validation_alias=AliasChoices("answers", "studentAnswers"),
        description="One answer per question.",
    )
    time_taken_seconds: int = Field(..., ge=0, description="Time spent on the quiz, in seconds.")


class ExplanationIn(CamelModel):
    quiz_id: int
    question_index: int
    wrong_answer: str = Field(..., description="Option label the student chose.")


def camelize(value: Any) -> Any:
    """Convert the snake_case keys of service payloads to camelCase, recursively.

    Keys without an underscore (option labels such as ``"A"``) are left alone.
    """
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) and "_" in k else k: camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    return value
