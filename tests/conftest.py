import json
import os
import tempfile

import pytest

# must point at a throwaway database before quizai.db creates its engine
_TMP_DIR = tempfile.mkdtemp(prefix="quizai-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["RESULT_RETENTION_DAYS"] = "15"

from quizai.classes import create_class, enroll_student  # noqa: E402
from quizai.db import get_session, reset_db  # noqa: E402
from quizai.generation import generate_quiz  # noqa: E402
from quizai.groq_client import QuizModel  # noqa: E402
from quizai.lectures import create_lecture  # noqa: E402
from quizai.models import User  # noqa: E402


LECTURE_TEXT = (
    "Photosynthesis converts light energy into chemical energy stored in glucose. "
    "Chlorophyll in the thylakoid membranes absorbs mostly red and blue light. "
) * 25


def sample_questions(count=10, correct=None):
    """Model-shaped question dicts; ``correct`` maps index -> label (default A)."""
    correct = correct or {}
    questions = []
    for i in range(count):
        label = correct.get(i, "A")
        questions.append({
            "question": f"Question {i + 1} about photosynthesis?",
            "options": {
                "A": f"Option A{i}",
                "B": f"Option B{i}",
                "C": f"Option C{i}",
                "D": f"Option D{i}",
            },
            "correct_answer": label,
            "correctAnswerExplanation": f"{label} is right because the lecture says so.",
            "explanations": {
                key: ("" if key == label else f"{key} mixes up the light reactions.")
                for key in "ABCD"
            },
        })
    return questions


class FakeQuizModel(QuizModel):
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def complete(self, prompt, settings=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def fresh_db():
    reset_db()
    yield


@pytest.fixture
def teacher():
    with get_session() as session:
        user = User(email="teacher@example.com", full_name="Tina Teacher", role="teacher")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def student():
    with get_session() as session:
        user = User(email="sam@example.com", full_name="Sam Student", role="student")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def other_student():
    with get_session() as session:
        user = User(email="olive@example.com", full_name="Olive Other", role="student")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def classroom(teacher, student):
    cls = create_class("Biology 101", "Plants", teacher.id, code="BIO101")
    enroll_student(cls.id, student.id)
    return cls


@pytest.fixture
def lecture(teacher, classroom):
    return create_lecture(teacher.id, "Photosynthesis", LECTURE_TEXT[:3000], class_id=classroom.id)


@pytest.fixture
def make_model():
    def _make(questions=None, reply=None, error=None):
        if reply is None and error is None:
            reply = json.dumps(questions if questions is not None else sample_questions())
        return FakeQuizModel(reply=reply, error=error)
    return _make


@pytest.fixture
def quiz(lecture, teacher, make_model):
    """Generated quiz where question 0 is B, question 1 is C and the rest are A."""
    model = make_model(sample_questions(correct={0: "B", 1: "C"}))
    return generate_quiz(lecture.id, teacher.id, model=model)
