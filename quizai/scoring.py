import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizai.config import get_settings
from quizai.db import get_session
from quizai.errors import (
    AccessDeniedError,
    AlreadyTakenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from quizai.models import QuizResult, now_utc
from quizai.quiz import (
    ensure_enrolled,
    find_result,
    get_questions_for_quiz,
    get_quiz,
    question_options,
)

logger = logging.getLogger(__name__)


def _field(item: Any, *names: str):
    for name in names:
        if isinstance(item, dict):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    return None


def _read_answers(answers: Iterable[Any]) -> List[Tuple[int, str]]:
    """Normalize submitted answers to (question_index, selected_option) pairs.

    Later entries for an index that was already answered are ignored.
    """
    if answers is None:
        raise ValidationError("Answers are required.")
    pairs = []
    seen = set()
    for item in answers:
        index = _field(item, 'question_index', 'questionIndex')
        selected = _field(item, 'selected_option', 'selectedOption')
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValidationError("Each answer needs an integer question index.")
        if index in seen:
            continue
        seen.add(index)
        pairs.append((index, "" if selected is None else str(selected)))
    return pairs


def submit_quiz(
    quiz_id: int,
    student_id: int,
    answers: Iterable[Any],
    time_taken_seconds: int,
    student_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Score a student's answers and store the result.

    Answers are matched to questions by index; indexes outside the quiz are
    skipped. Each correct answer scores exactly one point.
    """
    if isinstance(time_taken_seconds, bool) or not isinstance(time_taken_seconds, int) or time_taken_seconds < 0:
        raise ValidationError("timeTakenSeconds must be a non-negative integer.")
    pairs = _read_answers(answers)

    quiz = get_quiz(quiz_id)
    ensure_enrolled(quiz, student_id)
    if find_result(quiz_id, student_id):
        raise AlreadyTakenError("You have already submitted this quiz.", quiz_title=quiz.title)

    questions = {q.position: q for q in get_questions_for_quiz(quiz_id)}
    total = len(questions)
    score = 0
    stored = []
    details = []
    for index, selected in pairs:
        question = questions.get(index)
        if question is None:
            continue
        is_correct = selected == question.correct_answer
        if is_correct:
            score += 1
        stored.append({
            'question_index': index,
            'selected_option': selected,
            'correct_option': question.correct_answer,
            'is_correct': is_correct,
        })
        details.append({
            'question_index': index,
            'question_text': question.text,
            'options': question_options(question),
            'student_answer': selected,
            'correct_answer': question.correct_answer,
            'is_correct': is_correct,
        })

    percentage = (score / total) * 100 if total > 0 else 0.0

    with get_session() as session:
        result = QuizResult(
            quiz_id=quiz.id,
            lecture_id=quiz.lecture_id,
            class_id=quiz.class_id,
            student_id=student_id,
            student_name=student_name,
            score=score,
            total_questions=total,
            percentage=percentage,
            time_taken_seconds=time_taken_seconds,
            answers=json.dumps(stored),
        )
        session.add(result)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            # a concurrent submission won the insert
            logger.warning("Duplicate submission for quiz %s by student %s", quiz_id, student_id)
            raise AlreadyTakenError("You have already submitted this quiz.", quiz_title=quiz.title) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Saving result for quiz %s failed", quiz_id)
            raise PersistenceError(f"Failed to submit quiz: {e}") from e
        session.refresh(result)

    logger.info("Result %s saved: student %s scored %d/%d on quiz %s", result.id, student_id, score, total, quiz_id)
    return {
        'result_id': result.id,
        'quiz_id': quiz.id,
        'quiz_title': quiz.title,
        'lecture_id': quiz.lecture_id,
        'class_id': quiz.class_id,
        'score': score,
        'total_questions': total,
        'percentage': percentage,
        'time_taken_seconds': time_taken_seconds,
        'question_details': details,
    }


def stored_answers(result: QuizResult) -> List[Dict[str, Any]]:
    return json.loads(result.answers) if result.answers else []


def get_result_detail(result_id: int, requester_id: int) -> Dict[str, Any]:
    """Breakdown of a stored result, visible to its student and the quiz author."""
    with get_session() as session:
        result = session.get(QuizResult, result_id)
    if not result:
        raise NotFoundError("Result not found")
    quiz = get_quiz(result.quiz_id)
    if requester_id not in (result.student_id, quiz.author_id):
        raise AccessDeniedError("Access denied. This result belongs to another student.")

    questions = {q.position: q for q in get_questions_for_quiz(result.quiz_id)}
    details = []
    for answer in stored_answers(result):
        question = questions.get(answer['question_index'])
        details.append({
            'question_index': answer['question_index'],
            'question_text': question.text if question else None,
            'options': question_options(question) if question else {},
            'student_answer': answer['selected_option'],
            'correct_answer': answer['correct_option'],
            'is_correct': answer['is_correct'],
        })
    return {
        'result_id': result.id,
        'quiz_id': result.quiz_id,
        'quiz_title': quiz.title,
        'lecture_id': result.lecture_id,
        'class_id': result.class_id,
        'student_id': result.student_id,
        'student_name': result.student_name,
        'score': result.score,
        'total_questions': result.total_questions,
        'percentage': result.percentage,
        'time_taken_seconds': result.time_taken_seconds,
        'submitted_at': result.submitted_at,
        'question_details': details,
    }


def purge_expired_results(retention_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """Delete results submitted before the retention window. Returns the number removed."""
    if retention_days is None:
        retention_days = get_settings().result_retention_days
    cutoff = (now or now_utc()) - timedelta(days=retention_days)
    with get_session() as session:
        outcome = session.exec(delete(QuizResult).where(QuizResult.submitted_at < cutoff))
        session.commit()
    removed = outcome.rowcount or 0
    if removed:
        logger.info("Removed %d quiz result(s) older than %d days", removed, retention_days)
    return removed
