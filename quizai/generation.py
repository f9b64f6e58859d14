import json
import logging
from typing import List, Optional

from langchain_core.prompts import PromptTemplate
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from quizai.config import get_settings
from quizai.db import get_session
from quizai.errors import (
    ConflictError,
    InvalidStatusTransition,
    PersistenceError,
    QuizAIError,
    QuizValidationError,
    TextTooShortError,
    UpstreamModelError,
)
from quizai.groq_client import GenerationSettings, GroqQuizModel, QuizModel
from quizai.lectures import fail_stale_generations, get_owned_lecture, transition_status
from quizai.models import LectureStatus, Question, Quiz
from quizai.quiz_schema import GeneratedQuestion, parse_quiz_response

logger = logging.getLogger(__name__)

QUIZ_PROMPT = """You write multiple-choice quizzes for students, based only on the lecture notes below.

Rules:
1. Write exactly {question_count} questions.
2. Every question has exactly 4 options labelled A, B, C and D, with distinct texts.
3. Test understanding of the material, not memorisation of phrases.
4. Difficulty mix: {easy} easy, {medium} medium and {hard} hard questions.
5. Wrong options must be plausible but clearly incorrect.
6. For every wrong option write a 2-3 sentence explanation of the misconception behind it, referring to the lecture.
7. The correct option gets an empty string in "explanations"; explain it in "correctAnswerExplanation" instead.
8. Reply with JSON only, no extra text.

Lecture notes:
{context}

Reply with a JSON object of this shape:
{{
  "questions": [
    {{
      "question": "Complete question text?",
      "options": {{"A": "First option", "B": "Second option", "C": "Third option", "D": "Fourth option"}},
      "correct_answer": "B",
      "correctAnswerExplanation": "Why B is correct, with a reference to the lecture.",
      "explanations": {{
        "A": "Why A is wrong and what it is confused with.",
        "B": "",
        "C": "Why C is wrong and what was misunderstood.",
        "D": "Why D is wrong and how to avoid the mistake."
      }}
    }}
  ]
}}
"""


def difficulty_mix(question_count: int):
    """Split ``question_count`` into (easy, medium, hard); 10 gives 3/4/3."""
    easy = hard = round(question_count * 0.3)
    medium = max(question_count - easy - hard, 0)
    return easy, medium, hard


def build_quiz_prompt(text: str, question_count: int = 10, char_limit: Optional[int] = None) -> str:
    if char_limit is None:
        char_limit = get_settings().source_char_limit
    easy, medium, hard = difficulty_mix(question_count)
    prompt = PromptTemplate.from_template(QUIZ_PROMPT)
    return prompt.format(
        context=(text or "")[:char_limit],
        question_count=question_count,
        easy=easy,
        medium=medium,
        hard=hard,
    )


def _mark_failed(lecture_id: int, message: str) -> None:
    try:
        transition_status(lecture_id, LectureStatus.FAILED, error=message)
    except InvalidStatusTransition:
        logger.exception("Could not mark lecture %s as failed", lecture_id)


def _question_rows(quiz_id: int, questions: List[GeneratedQuestion]) -> List[Question]:
    return [
        Question(
            quiz_id=quiz_id,
            position=position,
            text=q.question,
            options=json.dumps(q.options),
            correct_answer=q.correct_answer,
            correct_answer_explanation=q.correct_answer_explanation,
            explanations=json.dumps(q.explanations),
        )
        for position, q in enumerate(questions)
    ]


def generate_quiz(
    lecture_id: int,
    requester_id: int,
    model: Optional[QuizModel] = None,
    settings: Optional[GenerationSettings] = None,
) -> Quiz:
    """Generate and store the quiz for a lecture.

    The lecture goes to ``processing`` before the model is called and ends in
    ``completed`` (in the same transaction as the quiz insert) or ``failed``
    with the reason recorded on the lecture. Nothing is stored on failure.
    """
    config = get_settings()
    lecture = get_owned_lecture(lecture_id, requester_id)

    with get_session() as session:
        existing = session.exec(select(Quiz).where(Quiz.lecture_id == lecture_id)).first()
    if existing:
        raise ConflictError("Quiz already generated for this lecture")

    fail_stale_generations(config.generation_timeout_seconds, lecture_id=lecture_id)
    transition_status(lecture_id, LectureStatus.PROCESSING)

    text = lecture.extracted_text or ""
    if len(text) < config.min_text_length:
        message = "Text too short for quiz generation"
        _mark_failed(lecture_id, message)
        raise TextTooShortError(message)

    prompt = build_quiz_prompt(text, config.question_count, config.source_char_limit)
    try:
        model = model or GroqQuizModel()
        raw = model.complete(prompt, settings or GenerationSettings())
    except QuizAIError as e:
        _mark_failed(lecture_id, e.message)
        raise
    except Exception as e:
        logger.exception("Quiz model call failed for lecture %s", lecture_id)
        _mark_failed(lecture_id, f"AI API Error: {e}")
        raise UpstreamModelError(f"AI API Error: {e}") from e

    try:
        questions = parse_quiz_response(raw)
    except QuizAIError as e:
        logger.warning("Quiz response for lecture %s rejected: %s", lecture_id, e.message)
        message = f"AI response parsing failed: {e.message}"
        _mark_failed(lecture_id, message)
        raise QuizValidationError(message) from e

    if len(questions) != config.question_count:
        logger.warning(
            "Lecture %s: model returned %d questions, expected %d; keeping them",
            lecture_id, len(questions), config.question_count,
        )

    with get_session() as session:
        try:
            quiz = Quiz(
                lecture_id=lecture.id,
                class_id=lecture.class_id,
                title=lecture.title,
                author_id=requester_id,
                total_questions=len(questions),
            )
            session.add(quiz)
            session.flush()
            session.add_all(_question_rows(quiz.id, questions))
            transition_status(lecture_id, LectureStatus.COMPLETED, session=session)
            session.commit()
        except InvalidStatusTransition:
            session.rollback()
            raise
        except IntegrityError as e:
            session.rollback()
            logger.warning("Quiz insert for lecture %s hit a constraint: %s", lecture_id, e.orig)
            _mark_failed(lecture_id, "Quiz already generated for this lecture")
            raise ConflictError("Quiz already generated for this lecture") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Saving quiz for lecture %s failed", lecture_id)
            _mark_failed(lecture_id, f"Database error: {e}")
            raise PersistenceError(f"Database error: {e}") from e
        session.refresh(quiz)

    logger.info("Quiz %s generated for lecture %s with %d questions", quiz.id, lecture_id, quiz.total_questions)
    return quiz
