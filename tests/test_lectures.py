import pytest
from sqlmodel import select

from quizai.classes import create_class
from quizai.db import get_session
from quizai.errors import (
    AccessDeniedError,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from quizai.extraction import DocumentFormat, ExtractionError, TextExtractor
from quizai.lectures import (
    create_lecture,
    delete_lecture,
    get_lecture,
    get_lecture_text,
    ingest_lecture,
    list_lectures_for_teacher,
    transition_status,
)
from quizai.models import LectureStatus, Question, Quiz, QuizResult
from quizai.scoring import submit_quiz


class _StaticExtractor(TextExtractor):
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def extract(self, data, declared_format):
        self.calls.append((data, declared_format))
        if self.error:
            raise self.error
        return self.text


def test_create_lecture_starts_pending(teacher):
    lecture = create_lecture(teacher.id, "  Cells  ", "Cells are the basic unit of life.")
    assert lecture.title == "Cells"
    assert lecture.processing_status == LectureStatus.PENDING
    assert lecture.text_length == len("Cells are the basic unit of life.")
    assert lecture.quiz_generated is False


def test_create_lecture_requires_title(teacher):
    with pytest.raises(ValidationError):
        create_lecture(teacher.id, "   ", "text")


def test_create_lecture_in_foreign_class_denied(teacher, other_student):
    cls = create_class("Other", None, other_student.id, code="OTHER1")
    with pytest.raises(AccessDeniedError):
        create_lecture(teacher.id, "Title", "text", class_id=cls.id)


def test_ingest_lecture_uses_extractor(teacher):
    extractor = _StaticExtractor(text="Extracted slide text")
    lecture = ingest_lecture(
        teacher.id, "Slides", b"%PDF-1.4", "application/pdf", extractor, original_file_name="slides.pdf"
    )
    assert extractor.calls == [(b"%PDF-1.4", DocumentFormat.PDF)]
    assert lecture.extracted_text == "Extracted slide text"
    assert lecture.original_file_name == "slides.pdf"


def test_ingest_rejects_unsupported_type(teacher):
    with pytest.raises(ValidationError, match="Invalid file type"):
        ingest_lecture(teacher.id, "Pic", b"...", "image/png", _StaticExtractor(text="x"))


def test_ingest_wraps_extraction_failure(teacher):
    extractor = _StaticExtractor(error=ExtractionError("corrupt file"))
    mime = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    with pytest.raises(ValidationError, match="Failed to extract text from DOCX file"):
        ingest_lecture(teacher.id, "Doc", b"...", mime, extractor)
    assert list_lectures_for_teacher(teacher.id) == []


def test_lecture_text_only_for_owner(lecture, teacher, student):
    info = get_lecture_text(lecture.id, teacher.id)
    assert info["text_length"] == 3000
    with pytest.raises(AccessDeniedError):
        get_lecture_text(lecture.id, student.id)


def test_missing_lecture_not_found():
    with pytest.raises(NotFoundError):
        get_lecture(9999)


def test_status_machine_happy_path(lecture):
    transition_status(lecture.id, LectureStatus.PROCESSING)
    transition_status(lecture.id, LectureStatus.COMPLETED)
    stored = get_lecture(lecture.id)
    assert stored.processing_status == LectureStatus.COMPLETED
    assert stored.quiz_generated is True


def test_failed_records_error_and_can_be_retried(lecture):
    transition_status(lecture.id, LectureStatus.PROCESSING)
    transition_status(lecture.id, LectureStatus.FAILED, error="AI API Error: timeout")
    assert get_lecture(lecture.id).generation_error == "AI API Error: timeout"

    transition_status(lecture.id, LectureStatus.PROCESSING)
    stored = get_lecture(lecture.id)
    assert stored.processing_status == LectureStatus.PROCESSING
    assert stored.generation_error is None


@pytest.mark.parametrize("target", [LectureStatus.COMPLETED, LectureStatus.FAILED, LectureStatus.PENDING])
def test_illegal_transitions_from_pending(lecture, target):
    with pytest.raises(InvalidStatusTransition):
        transition_status(lecture.id, target)
    assert get_lecture(lecture.id).processing_status == LectureStatus.PENDING


def test_completed_is_terminal(quiz, lecture):
    with pytest.raises(InvalidStatusTransition):
        transition_status(lecture.id, LectureStatus.PROCESSING)


def test_delete_lecture_cascades(quiz, lecture, teacher, student):
    submit_quiz(quiz.id, student.id, [{"question_index": 0, "selected_option": "B"}], 30)

    assert delete_lecture(lecture.id, teacher.id) is True

    with get_session() as session:
        assert list(session.exec(select(Quiz))) == []
        assert list(session.exec(select(Question))) == []
        assert list(session.exec(select(QuizResult))) == []
    with pytest.raises(NotFoundError):
        get_lecture(lecture.id)


def test_delete_lecture_requires_owner(lecture, student):
    with pytest.raises(AccessDeniedError):
        delete_lecture(lecture.id, student.id)
    assert get_lecture(lecture.id).id == lecture.id
