import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, or_, update
from sqlmodel import Session, select

from quizai.classes import get_owned_class
from quizai.config import get_settings
from quizai.db import get_session
from quizai.errors import (
    AccessDeniedError,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from quizai.extraction import ExtractionError, TextExtractor, format_for_mime
from quizai.models import Lecture, LectureStatus, Question, Quiz, QuizResult, now_utc

logger = logging.getLogger(__name__)

STALE_GENERATION_ERROR = "Quiz generation was interrupted"

# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS: Dict[LectureStatus, Set[LectureStatus]] = {
    LectureStatus.PROCESSING: {LectureStatus.PENDING, LectureStatus.FAILED},
    LectureStatus.COMPLETED: {LectureStatus.PROCESSING},
    LectureStatus.FAILED: {LectureStatus.PROCESSING},
}


def create_lecture(
    teacher_id: int,
    title: str,
    extracted_text: str,
    class_id: Optional[int] = None,
    original_file_name: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> Lecture:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Lecture title is required.")
    if class_id is not None and get_owned_class(class_id, teacher_id) is None:
        raise AccessDeniedError("Class not found or access denied.")

    text = extracted_text or ""
    with get_session() as session:
        lecture = Lecture(
            title=title,
            teacher_id=teacher_id,
            class_id=class_id,
            original_file_name=original_file_name,
            mime_type=mime_type,
            extracted_text=text,
            text_length=len(text),
        )
        session.add(lecture)
        session.commit()
        session.refresh(lecture)
    logger.info("Lecture %s saved (%d chars, class=%s)", lecture.id, lecture.text_length, class_id)
    return lecture


def ingest_lecture(
    teacher_id: int,
    title: str,
    data: bytes,
    mime_type: str,
    extractor: TextExtractor,
    class_id: Optional[int] = None,
    original_file_name: Optional[str] = None,
) -> Lecture:
    """Extract text from an uploaded document and register it as a lecture."""
    declared_format = format_for_mime(mime_type)
    if declared_format is None:
        raise ValidationError("Invalid file type. Only PDF, PPT, PPTX, DOC, DOCX files are allowed.")
    try:
        text = extractor.extract(data, declared_format)
    except ExtractionError as e:
        logger.warning("Text extraction failed for %s: %s", original_file_name, e)
        raise ValidationError(f"Failed to extract text from {declared_format.value.upper()} file: {e}") from e
    return create_lecture(
        teacher_id,
        title,
        text,
        class_id=class_id,
        original_file_name=original_file_name,
        mime_type=mime_type,
    )


def get_lecture(lecture_id: int) -> Lecture:
    with get_session() as session:
        lecture = session.get(Lecture, lecture_id)
    if not lecture:
        raise NotFoundError("Lecture not found")
    return lecture


def get_owned_lecture(lecture_id: int, teacher_id: int) -> Lecture:
    lecture = get_lecture(lecture_id)
    if lecture.teacher_id != teacher_id:
        raise AccessDeniedError("Access denied. You do not own this lecture.")
    return lecture


def list_lectures_for_teacher(teacher_id: int) -> List[Lecture]:
    with get_session() as session:
        q = select(Lecture).where(Lecture.teacher_id == teacher_id).order_by(Lecture.uploaded_at.desc())
        return list(session.exec(q))


def get_lecture_text(lecture_id: int, teacher_id: int) -> dict:
    lecture = get_owned_lecture(lecture_id, teacher_id)
    return {
        'id': lecture.id,
        'title': lecture.title,
        'text_length': lecture.text_length,
        'extracted_text': lecture.extracted_text,
    }


def delete_lecture(lecture_id: int, teacher_id: int) -> bool:
    """Delete a lecture together with its quiz, questions and results."""
    lecture = get_owned_lecture(lecture_id, teacher_id)
    with get_session() as session:
        quiz_ids = list(session.exec(select(Quiz.id).where(Quiz.lecture_id == lecture_id)))
        session.exec(delete(QuizResult).where(QuizResult.lecture_id == lecture_id))
        if quiz_ids:
            session.exec(delete(QuizResult).where(QuizResult.quiz_id.in_(quiz_ids)))
            session.exec(delete(Question).where(Question.quiz_id.in_(quiz_ids)))
            session.exec(delete(Quiz).where(Quiz.id.in_(quiz_ids)))
        session.exec(delete(Lecture).where(Lecture.id == lecture_id))
        session.commit()
    logger.info("Lecture %s (%s) deleted with %d quiz(zes)", lecture_id, lecture.title, len(quiz_ids))
    return True


def transition_status(
    lecture_id: int,
    target: LectureStatus,
    error: Optional[str] = None,
    session: Optional[Session] = None,
) -> None:
    """Move a lecture to ``target`` if its current status allows it.

    The update is conditional on the current status, so two callers racing for
    the same lecture cannot both enter ``processing``. When ``session`` is
    given the change joins that transaction and is not committed here.
    """
    sources = ALLOWED_TRANSITIONS.get(target)
    if not sources:
        raise InvalidStatusTransition(f"Lecture status cannot be set to {target.value}")

    values = {'processing_status': target, 'last_processed_at': now_utc()}
    if target == LectureStatus.FAILED:
        values['quiz_generated'] = False
        values['generation_error'] = error or "Quiz generation failed"
    elif target == LectureStatus.COMPLETED:
        values['quiz_generated'] = True
        values['generation_error'] = None
    else:
        values['generation_error'] = None

    stmt = (
        update(Lecture)
        .where(Lecture.id == lecture_id, Lecture.processing_status.in_(list(sources)))
        .values(**values)
    )

    if session is not None:
        result = session.exec(stmt)
        changed = result.rowcount
    else:
        with get_session() as own_session:
            result = own_session.exec(stmt)
            changed = result.rowcount
            own_session.commit()

    if not changed:
        current = get_lecture(lecture_id).processing_status
        if current == LectureStatus.PROCESSING:
            raise InvalidStatusTransition("Quiz generation is already in progress for this lecture")
        raise InvalidStatusTransition(
            f"Lecture cannot move from {current.value} to {target.value}"
        )
    logger.info("Lecture %s -> %s", lecture_id, target.value)


def fail_stale_generations(
    max_age_seconds: Optional[int] = None,
    lecture_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Move lectures stuck in ``processing`` past the timeout to ``failed``.

    A run that crashed or hung leaves its lecture in ``processing``; once it is
    older than ``max_age_seconds`` a new generation attempt may start again.
    """
    if max_age_seconds is None:
        max_age_seconds = get_settings().generation_timeout_seconds
    now = now or now_utc()
    cutoff = now - timedelta(seconds=max_age_seconds)

    stmt = update(Lecture).where(
        Lecture.processing_status == LectureStatus.PROCESSING,
        or_(Lecture.last_processed_at.is_(None), Lecture.last_processed_at < cutoff),
    )
    if lecture_id is not None:
        stmt = stmt.where(Lecture.id == lecture_id)
    stmt = stmt.values(
        processing_status=LectureStatus.FAILED,
        quiz_generated=False,
        generation_error=STALE_GENERATION_ERROR,
        last_processed_at=now,
    )

    with get_session() as session:
        changed = session.exec(stmt).rowcount
        session.commit()
    if changed:
        logger.warning("Marked %d interrupted generation(s) as failed", changed)
    return changed
