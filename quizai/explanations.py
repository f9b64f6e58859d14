import logging
from typing import Any, Dict, Optional

from quizai.errors import AccessDeniedError, NotFoundError
from quizai.quiz import find_result, get_questions_for_quiz, get_quiz, question_explanations, question_options

logger = logging.getLogger(__name__)


def explain(
    quiz_id: int,
    question_index: int,
    wrong_answer: str,
    student_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Look up the stored remediation text for a chosen answer.

    Only reads what generation stored; the model is never called here. When a
    student id is given, the student must have submitted the quiz already.
    """
    quiz = get_quiz(quiz_id)
    if student_id is not None and find_result(quiz_id, student_id) is None:
        raise AccessDeniedError("Explanations are available after you submit the quiz.")

    question = next((q for q in get_questions_for_quiz(quiz_id) if q.position == question_index), None)
    if question is None:
        raise NotFoundError("Question not found")

    options = question_options(question)
    explanations = question_explanations(question)
    correct = question.correct_answer
    correct_explanation = (question.correct_answer_explanation or "").strip()
    remediation = (explanations.get(wrong_answer) or "").strip()

    if remediation:
        explanation_type = 'detailed'
        text = remediation
        if correct_explanation:
            text += f"\n\n---\nWhy {correct} is correct: {correct_explanation}"
    else:
        explanation_type = 'basic'
        text = f"The correct answer is {correct}) {options.get(correct, '')}."
        if correct_explanation:
            text += f"\n\n{correct_explanation}"
        else:
            text += " Please review the lecture material for detailed understanding."
        logger.debug("No stored explanation for quiz %s question %s option %s", quiz_id, question_index, wrong_answer)

    return {
        'quiz_id': quiz.id,
        'question_index': question_index,
        'explanation': text,
        'explanation_type': explanation_type,
        'correct_answer': correct,
        'correct_option': options.get(correct),
        'wrong_option': options.get(wrong_answer),
        'has_detailed_explanations': any(value.strip() for value in explanations.values() if value),
        'has_correct_explanation': bool(correct_explanation),
    }
