import json
import logging
from typing import Any, Dict, List, Optional

from sqlmodel import select

from quizai.classes import get_enrolled_class_ids, is_enrolled
from quizai.db import get_session
from quizai.errors import AccessDeniedError, AlreadyTakenError, NotFoundError
from quizai.models import Class, Question, Quiz, QuizResult

logger = logging.getLogger(__name__)


def question_options(question: Question) -> Dict[str, str]:
    return json.loads(question.options) if question.options else {}


def question_explanations(question: Question) -> Dict[str, str]:
    return json.loads(question.explanations) if question.explanations else {}


def get_quiz(quiz_id: int) -> Quiz:
    with get_session() as session:
        quiz = session.get(Quiz, quiz_id)
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


def get_questions_for_quiz(quiz_id: int) -> List[Question]:
    with get_session() as session:
        q = select(Question).where(Question.quiz_id == quiz_id).order_by(Question.position)
        return list(session.exec(q))


def set_quiz_active(quiz_id: int, teacher_id: int, active: bool = True) -> Quiz:
    with get_session() as session:
        quiz = session.get(Quiz, quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")
        if quiz.author_id != teacher_id:
            raise AccessDeniedError("Access denied. You do not own this quiz.")
        quiz.is_active = active
        session.add(quiz)
        session.commit()
        session.refresh(quiz)
    logger.info("Quiz %s active=%s", quiz_id, active)
    return quiz


def find_result(quiz_id: int, student_id: int) -> QuizResult | None:
    with get_session() as session:
        q = select(QuizResult).where(QuizResult.quiz_id == quiz_id, QuizResult.student_id == student_id)
        return session.exec(q).first()


def ensure_enrolled(quiz: Quiz, student_id: int) -> None:
    if quiz.class_id is not None and not is_enrolled(student_id, quiz.class_id):
        raise AccessDeniedError("Access denied. You are not enrolled in this class.")


def get_quiz_for_student(quiz_id: int, student_id: int, review: bool = False) -> Dict[str, Any]:
    """Return the quiz without answer keys or explanations.

    For taking (``review=False``) the quiz must be active and not yet attempted
    by the student; an earlier result raises AlreadyTakenError.
    """
    quiz = get_quiz(quiz_id)
    ensure_enrolled(quiz, student_id)
    if not review:
        if not quiz.is_active:
            raise AccessDeniedError("This quiz is not available.")
        if find_result(quiz_id, student_id):
            raise AlreadyTakenError("You have already taken this quiz.", quiz_title=quiz.title)

    questions = [
        {'index': q.position, 'question': q.text, 'options': question_options(q)}
        for q in get_questions_for_quiz(quiz_id)
    ]
    return {
        'id': quiz.id,
        'title': quiz.title,
        'lecture_id': quiz.lecture_id,
        'class_id': quiz.class_id,
        'total_questions': len(questions),
        'questions': questions,
    }


def list_available_quizzes(student_id: int) -> List[Dict[str, Any]]:
    """Active quizzes in the student's classes that the student has not taken yet."""
    class_ids = get_enrolled_class_ids(student_id)
    if not class_ids:
        return []
    with get_session() as session:
        quizzes = list(session.exec(
            select(Quiz)
            .where(Quiz.class_id.in_(class_ids), Quiz.is_active == True)  # noqa: E712
            .order_by(Quiz.created_at.desc(), Quiz.id.desc())
        ))
        taken = set(session.exec(select(QuizResult.quiz_id).where(QuizResult.student_id == student_id)))
        class_titles = {
            c.id: c.title for c in session.exec(select(Class).where(Class.id.in_(class_ids)))
        }

    return [
        {
            'id': quiz.id,
            'title': quiz.title,
            'lecture_id': quiz.lecture_id,
            'class_id': quiz.class_id,
            'class_title': class_titles.get(quiz.class_id),
            'total_questions': quiz.total_questions,
            'created_at': quiz.created_at,
        }
        for quiz in quizzes
        if quiz.id not in taken
    ]


def explanation_status(quiz_id: int, user_id: Optional[int] = None, role: str = "student") -> Dict[str, Any]:
    """Explanation coverage for a quiz.

    With a ``user_id``, students must be enrolled in the quiz's class and
    teachers must be its author.
    """
    quiz = get_quiz(quiz_id)
    if user_id is not None:
        if role == "teacher":
            if quiz.author_id != user_id:
                raise AccessDeniedError("Access denied. You do not own this quiz.")
        else:
            ensure_enrolled(quiz, user_id)
    questions = get_questions_for_quiz(quiz_id)
    with_wrong = sum(
        1 for q in questions
        if any(text and text.strip() for text in question_explanations(q).values())
    )
    with_correct = sum(1 for q in questions if (q.correct_answer_explanation or "").strip())

    if questions and with_wrong == len(questions):
        level = 'full'
    elif with_wrong > 0:
        level = 'partial'
    else:
        level = 'none'
    return {
        'quiz_id': quiz.id,
        'has_enhanced_explanations': with_wrong > 0,
        'total_questions': len(questions),
        'questions_with_explanations': with_wrong,
        'questions_with_correct_explanations': with_correct,
        'enhancement_level': level,
        'generated_at': quiz.created_at,
    }
