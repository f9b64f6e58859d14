from enum import Enum
from typing import Optional
from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone

OPTION_LABELS = ("A", "B", "C", "D")


def now_utc():
    return datetime.now(timezone.utc)


class LectureStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    full_name: Optional[str] = None
    role: str = Field(default="student")  # teacher|student
    created_at: datetime = Field(default_factory=now_utc)


class Class(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    code: str = Field(index=True, unique=True)
    description: Optional[str] = None
    owner_id: int = Field(foreign_key="user.id")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=now_utc)


class Enrollment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    class_id: int = Field(foreign_key="class.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    role_in_class: str = Field(default="student")
    is_active: bool = Field(default=True)
    joined_at: datetime = Field(default_factory=now_utc)


class Lecture(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    teacher_id: int = Field(foreign_key="user.id", index=True)
    class_id: Optional[int] = Field(default=None, foreign_key="class.id")
    original_file_name: Optional[str] = None
    mime_type: Optional[str] = None
    extracted_text: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    text_length: int = Field(default=0)
    processing_status: LectureStatus = Field(default=LectureStatus.PENDING)
    quiz_generated: bool = Field(default=False)
    generation_error: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=now_utc)
    last_processed_at: Optional[datetime] = None


class Quiz(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("lecture_id", name="uq_quiz_lecture"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    lecture_id: int = Field(foreign_key="lecture.id")
    class_id: Optional[int] = Field(default=None, foreign_key="class.id", index=True)
    title: str
    author_id: int = Field(foreign_key="user.id")
    total_questions: int = Field(default=0)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=now_utc)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    position: int  # 0-based order inside the quiz
    text: str
    options: str  # JSON: {"A": ..., "B": ..., "C": ..., "D": ...}
    correct_answer: str
    correct_answer_explanation: str = Field(default="")
    explanations: str  # JSON: label -> remediation text, "" for the correct label


class QuizResult(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("quiz_id", "student_id", name="uq_quiz_result_quiz_student"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    lecture_id: int = Field(foreign_key="lecture.id", index=True)
    class_id: Optional[int] = Field(default=None, foreign_key="class.id")
    student_id: int = Field(foreign_key="user.id", index=True)
    student_name: Optional[str] = None
    score: int = Field(default=0)
    total_questions: int = Field(default=0)
    percentage: float = Field(default=0.0)
    time_taken_seconds: int = Field(default=0)
    answers: Optional[str] = None  # JSON: list of {question_index, selected_option, correct_option, is_correct}
    submitted_at: datetime = Field(default_factory=now_utc)
