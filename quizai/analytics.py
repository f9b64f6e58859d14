"""Read-only aggregations over quiz results for the dashboards.

Nothing here is cached: each call loads the rows it needs, builds its lookup
tables locally and returns plain dicts.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import select

from quizai.db import get_session
from quizai.errors import AccessDeniedError
from quizai.lectures import get_owned_lecture
from quizai.models import Class, Lecture, Question, Quiz, QuizResult, now_utc
from quizai.quiz import get_quiz
from quizai.scoring import stored_answers

logger = logging.getLogger(__name__)

TREND_MARGIN = 5.0
TREND_MIN_RESULTS = 6


def format_duration(seconds) -> str:
    total = int(seconds or 0)
    if total < 0:
        total = 0
    return f"{total // 60}:{total % 60:02d}"


def score_bucket(percentage: float) -> str:
    if percentage >= 90:
        return 'excellent'
    if percentage >= 70:
        return 'good'
    if percentage >= 50:
        return 'average'
    return 'needs_improvement'


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def _buckets(percentages: Iterable[float]) -> Dict[str, int]:
    counts = {'excellent': 0, 'good': 0, 'average': 0, 'needs_improvement': 0}
    for p in percentages:
        counts[score_bucket(p)] += 1
    return counts


def _trend(newest_first: List[QuizResult]) -> str:
    if len(newest_first) < TREND_MIN_RESULTS:
        return 'flat'
    recent = _mean(r.percentage for r in newest_first[:3])
    previous = _mean(r.percentage for r in newest_first[3:6])
    if recent > previous + TREND_MARGIN:
        return 'up'
    if recent < previous - TREND_MARGIN:
        return 'down'
    return 'flat'


def lecture_results(lecture_id: int, teacher_id: int) -> List[Dict[str, Any]]:
    """Results for one lecture, best percentage first and faster time breaking ties."""
    get_owned_lecture(lecture_id, teacher_id)
    with get_session() as session:
        results = list(session.exec(select(QuizResult).where(QuizResult.lecture_id == lecture_id)))
    results.sort(key=lambda r: (-r.percentage, r.time_taken_seconds))
    return [
        {
            'rank': rank,
            'result_id': r.id,
            'student_id': r.student_id,
            'student_name': r.student_name,
            'score': r.score,
            'total_questions': r.total_questions,
            'percentage': r.percentage,
            'time_taken_seconds': r.time_taken_seconds,
            'time_taken': format_duration(r.time_taken_seconds),
            'submitted_at': r.submitted_at,
        }
        for rank, r in enumerate(results, start=1)
    ]


def student_performance(
    student_id: int,
    now: Optional[datetime] = None,
    window_days: int = 15,
) -> Dict[str, Any]:
    cutoff = (now or now_utc()) - timedelta(days=window_days)
    with get_session() as session:
        window = list(session.exec(
            select(QuizResult)
            .where(QuizResult.submitted_at >= cutoff)
            .order_by(QuizResult.submitted_at.desc(), QuizResult.id.desc())
        ))
        quiz_ids = {r.quiz_id for r in window}
        quizzes = {q.id: q for q in session.exec(select(Quiz).where(Quiz.id.in_(list(quiz_ids))))} if quiz_ids else {}
        class_ids = {q.class_id for q in quizzes.values() if q.class_id is not None}
        class_titles = {
            c.id: c.title for c in session.exec(select(Class).where(Class.id.in_(list(class_ids))))
        } if class_ids else {}

    mine = [r for r in window if r.student_id == student_id]

    per_student = defaultdict(list)
    names = {}
    for r in window:
        per_student[r.student_id].append(r.percentage)
        names.setdefault(r.student_id, r.student_name)
    ranked = sorted(per_student.items(), key=lambda item: _mean(item[1]), reverse=True)
    ranked_ids = [sid for sid, _ in ranked]
    current_rank = ranked_ids.index(student_id) + 1 if student_id in ranked_ids else len(ranked_ids) + 1

    def describe(r: QuizResult) -> Dict[str, Any]:
        quiz = quizzes.get(r.quiz_id)
        return {
            'quiz_id': r.quiz_id,
            'quiz_title': quiz.title if quiz else 'Unknown Quiz',
            'class_title': class_titles.get(quiz.class_id) if quiz else None,
            'score': r.percentage,
            'submitted_at': r.submitted_at,
            'time_taken_seconds': r.time_taken_seconds,
            'time_taken': format_duration(r.time_taken_seconds),
        }

    return {
        'student_stats': {
            'total_quizzes': len(mine),
            'average_score': round(_mean(r.percentage for r in mine), 1),
            'class_average': round(_mean(r.percentage for r in window), 1),
            'trend': _trend(mine),
            'current_rank': current_rank,
            'total_students': len(ranked_ids),
        },
        'recent_results': [describe(r) for r in mine[:10]],
        'trend_data': [describe(r) for r in reversed(mine)],
        'top_performers': [
            {
                'rank': rank,
                'student_id': sid,
                'name': names.get(sid),
                'average_score': round(_mean(scores), 1),
                'total_quizzes': len(scores),
            }
            for rank, (sid, scores) in enumerate(ranked[:3], start=1)
        ],
        'performance_breakdown': _buckets(r.percentage for r in mine),
    }


def empty_teacher_analytics() -> Dict[str, Any]:
    return {
        'overall_stats': {'total_students': 0, 'total_quizzes': 0, 'class_average': 0.0, 'total_results': 0},
        'performance_distribution': [],
        'engagement_levels': {'highly_active': 0, 'moderately_active': 0, 'low_activity': 0, 'inactive': 0},
        'insights': {
            'class_health': {'engagement': 0.0, 'performance': 0.0, 'participation': 0.0},
            'top_performers': [],
            'students_needing_attention': [],
            'most_challenging_quiz': None,
            'best_performing_quiz': None,
        },
        'ranked_students': [],
        'recent_activity': [],
    }


def _rate(part: int, total: int) -> float:
    return (part / total) * 100 if total else 0.0


def teacher_analytics(teacher_id: int) -> Dict[str, Any]:
    with get_session() as session:
        lectures = {lec.id: lec for lec in session.exec(select(Lecture).where(Lecture.teacher_id == teacher_id))}
        if not lectures:
            return empty_teacher_analytics()
        quizzes = {q.id: q for q in session.exec(select(Quiz).where(Quiz.lecture_id.in_(list(lectures))))}
        results = list(session.exec(
            select(QuizResult).where(QuizResult.quiz_id.in_(list(quizzes)))
        )) if quizzes else []

    total_quizzes = len(quizzes)
    data = empty_teacher_analytics()

    by_quiz = defaultdict(list)
    by_student = defaultdict(list)
    for r in results:
        by_quiz[r.quiz_id].append(r)
        by_student[r.student_id].append(r)

    distribution = []
    for quiz_id, quiz_results in by_quiz.items():
        quiz = quizzes[quiz_id]
        scores = [r.percentage for r in quiz_results]
        lecture = lectures.get(quiz.lecture_id)
        entry = {
            'quiz_id': quiz_id,
            'quiz_title': quiz.title,
            'lecture_title': lecture.title if lecture else None,
            'participants': len(scores),
            'average_score': round(_mean(scores), 1),
            'highest_score': round(max(scores), 1),
            'lowest_score': round(min(scores), 1),
        }
        entry.update(_buckets(scores))
        distribution.append(entry)

    ranked = []
    for sid, student_results in by_student.items():
        count = len(student_results)
        ranked.append({
            'student_id': sid,
            'student_name': student_results[0].student_name or f"Student {sid}",
            'average_score': round(_mean(r.percentage for r in student_results), 1),
            'total_quizzes': count,
            'average_time': format_duration(_mean(r.time_taken_seconds for r in student_results)),
            'participation_rate': round(_rate(count, total_quizzes), 1),
        })
    ranked.sort(key=lambda s: s['average_score'], reverse=True)
    for rank, student in enumerate(ranked, start=1):
        student['rank'] = rank

    levels = data['engagement_levels']
    for student in ranked:
        rate = student['participation_rate']
        if rate >= 80:
            levels['highly_active'] += 1
        elif rate >= 50:
            levels['moderately_active'] += 1
        elif rate >= 20:
            levels['low_activity'] += 1
        else:
            levels['inactive'] += 1

    total_students = len(ranked)
    average = _mean(r.percentage for r in results)
    by_average = sorted(distribution, key=lambda q: q['average_score'])

    data['overall_stats'] = {
        'total_students': total_students,
        'total_quizzes': total_quizzes,
        'class_average': round(average, 1),
        'total_results': len(results),
    }
    data['performance_distribution'] = distribution
    data['ranked_students'] = ranked
    data['insights'] = {
        'class_health': {
            'engagement': round(_rate(levels['highly_active'] + levels['moderately_active'], total_students), 1),
            'performance': round(average, 1),
            'participation': round(
                _rate(sum(1 for s in ranked if s['participation_rate'] >= 50), total_students), 1
            ),
        },
        'top_performers': ranked[:5],
        'students_needing_attention': [
            s for s in ranked if s['average_score'] < 60 or s['participation_rate'] < 50
        ][:5],
        'most_challenging_quiz': by_average[0] if by_average else None,
        'best_performing_quiz': by_average[-1] if by_average else None,
    }

    recent = sorted(results, key=lambda r: (r.submitted_at, r.id), reverse=True)[:10]
    data['recent_activity'] = [
        {
            'student_name': r.student_name or 'Unknown Student',
            'quiz_id': r.quiz_id,
            'quiz_title': quizzes[r.quiz_id].title,
            'score': round(r.percentage, 1),
            'submitted_at': r.submitted_at,
            'time_taken': format_duration(r.time_taken_seconds),
        }
        for r in recent
    ]
    logger.debug("Analytics for teacher %s: %d quizzes, %d results", teacher_id, total_quizzes, len(results))
    return data


def question_breakdown(quiz_id: int, teacher_id: int) -> List[Dict[str, Any]]:
    """Per-question attempt counts, correct rate and the wrong option chosen most often."""
    quiz = get_quiz(quiz_id)
    if quiz.author_id != teacher_id:
        raise AccessDeniedError("Access denied. You do not own this quiz.")
    with get_session() as session:
        questions = list(session.exec(
            select(Question).where(Question.quiz_id == quiz_id).order_by(Question.position)
        ))
        results = list(session.exec(select(QuizResult).where(QuizResult.quiz_id == quiz_id)))

    attempts = Counter()
    correct = Counter()
    wrong_choices = defaultdict(Counter)
    for result in results:
        for answer in stored_answers(result):
            index = answer['question_index']
            attempts[index] += 1
            if answer['is_correct']:
                correct[index] += 1
            else:
                wrong_choices[index][answer['selected_option']] += 1

    breakdown = []
    for q in questions:
        common = wrong_choices[q.position].most_common(1)
        breakdown.append({
            'question_index': q.position,
            'question': q.text,
            'correct_answer': q.correct_answer,
            'attempts': attempts[q.position],
            'correct_count': correct[q.position],
            'correct_rate': round(_rate(correct[q.position], attempts[q.position]), 1),
            'most_common_wrong_answer': common[0][0] if common else None,
        })
    return breakdown
