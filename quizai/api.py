"""HTTP boundary for the quiz service.

Authentication happens upstream; the gateway passes the caller's identity in
the ``X-User-Id``, ``X-User-Role`` and ``X-User-Name`` headers and this layer
trusts them. Every service error is answered as
``{"success": false, "message": ...}`` with the status the error carries.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from quizai import analytics, explanations, generation, lectures, quiz, scoring
from quizai.config import get_settings
from quizai.db import init_db
from quizai.errors import AccessDeniedError, AlreadyTakenError, QuizAIError
from quizai.groq_client import QuizModel
from quizai.logging_config import setup_logging
from quizai.models import Lecture
from quizai.schemas import (
    ExplanationIn,
    LectureIn,
    QuizActiveIn,
    SubmissionIn,
    camelize,
)

logger = logging.getLogger(__name__)

ROLES = ("teacher", "student")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    removed = scoring.purge_expired_results()
    interrupted = lectures.fail_stale_generations()
    logger.info(
        "QuizAI API started (%d expired result(s) purged, %d interrupted generation(s) failed)",
        removed, interrupted,
    )
    yield


openapi_tags = [
    {"name": "System", "description": "Health endpoint"},
    {"name": "Lectures", "description": "Lecture registry and quiz generation"},
    {"name": "Quizzes", "description": "Quiz delivery, scoring and explanations"},
    {"name": "Analytics", "description": "Dashboards for teachers and students"},
]

app = FastAPI(
    title="QuizAI",
    description="Generates quizzes from lecture text, delivers and scores them.",
    version="0.1.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _fail(status_code: int, message: str, **extra) -> JSONResponse:
    body = {"success": False, "message": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(QuizAIError)
async def quizai_error_handler(request: Request, exc: QuizAIError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    extra = {}
    if isinstance(exc, AlreadyTakenError) and exc.quiz_title:
        extra["quizTitle"] = exc.quiz_title
    return _fail(exc.http_status, exc.message, **extra)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {field} {first.get('msg', '')}".strip()
    return _fail(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _fail(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _fail(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str
    name: Optional[str] = None


# PUBLIC_INTERFACE
def current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Identity:
    """Identity forwarded by the authenticating gateway."""
    role = (x_user_role or "").strip().lower()
    try:
        user_id = int(x_user_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required.")
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required.")
    return Identity(user_id=user_id, role=role, name=x_user_name)


# PUBLIC_INTERFACE
def require_teacher(user: Identity = Depends(current_user)) -> Identity:
    if user.role != "teacher":
        raise AccessDeniedError("Access denied. Teachers only.")
    return user


# PUBLIC_INTERFACE
def require_student(user: Identity = Depends(current_user)) -> Identity:
    if user.role != "student":
        raise AccessDeniedError("Access denied. Students only.")
    return user


# PUBLIC_INTERFACE
def get_quiz_model() -> Optional[QuizModel]:
    """Model override for quiz generation.

    None lets the generation service build the Groq model itself, after the
    lecture checks pass; tests override this dependency with a fake.
    """
    return None


def _ok(**payload) -> dict:
    body = {"success": True}
    body.update(camelize(payload))
    return body


def _lecture_out(lecture: Lecture) -> dict:
    return {
        'id': lecture.id,
        'title': lecture.title,
        'class_id': lecture.class_id,
        'original_file_name': lecture.original_file_name,
        'text_length': lecture.text_length,
        'processing_status': lecture.processing_status.value,
        'quiz_generated': lecture.quiz_generated,
        'generation_error': lecture.generation_error,
        'uploaded_at': lecture.uploaded_at,
        'last_processed_at': lecture.last_processed_at,
    }


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["System"])
def health_check():
    return {"success": True, "message": "Healthy"}


# PUBLIC_INTERFACE
@app.post("/lectures", status_code=status.HTTP_201_CREATED, tags=["Lectures"])
def create_lecture(body: LectureIn, user: Identity = Depends(require_teacher)):
    lecture = lectures.create_lecture(
        user.user_id,
        body.title,
        body.extracted_text,
        class_id=body.class_id,
        original_file_name=body.original_file_name,
        mime_type=body.mime_type,
    )
    return _ok(message="Lecture uploaded successfully.", lecture=_lecture_out(lecture))


# PUBLIC_INTERFACE
@app.get("/lectures", tags=["Lectures"])
def list_lectures(user: Identity = Depends(require_teacher)):
    items = lectures.list_lectures_for_teacher(user.user_id)
    return _ok(lectures=[_lecture_out(lecture) for lecture in items])


# PUBLIC_INTERFACE
@app.get("/lectures/{lecture_id}/text", tags=["Lectures"])
def lecture_text(lecture_id: int, user: Identity = Depends(require_teacher)):
    return _ok(lecture=lectures.get_lecture_text(lecture_id, user.user_id))


# PUBLIC_INTERFACE
@app.delete("/lectures/{lecture_id}", tags=["Lectures"])
def delete_lecture(lecture_id: int, user: Identity = Depends(require_teacher)):
    lectures.delete_lecture(lecture_id, user.user_id)
    return _ok(message="Lecture and related data deleted successfully.")


# PUBLIC_INTERFACE
@app.post("/lectures/{lecture_id}/quiz", status_code=status.HTTP_201_CREATED, tags=["Lectures"])
def generate_quiz(
    lecture_id: int,
    user: Identity = Depends(require_teacher),
    model: Optional[QuizModel] = Depends(get_quiz_model),
):
    created = generation.generate_quiz(lecture_id, user.user_id, model=model)
    return _ok(
        message="Quiz generated successfully.",
        quiz_id=created.id,
        title=created.title,
        total_questions=created.total_questions,
    )


# PUBLIC_INTERFACE
@app.get("/lectures/{lecture_id}/results", tags=["Analytics"])
def lecture_results(lecture_id: int, user: Identity = Depends(require_teacher)):
    return _ok(results=analytics.lecture_results(lecture_id, user.user_id))


# PUBLIC_INTERFACE
@app.patch("/quizzes/{quiz_id}/active", tags=["Quizzes"])
def set_quiz_active(quiz_id: int, body: QuizActiveIn, user: Identity = Depends(require_teacher)):
    updated = quiz.set_quiz_active(quiz_id, user.user_id, body.is_active)
    return _ok(quiz_id=updated.id, is_active=updated.is_active)


# PUBLIC_INTERFACE
@app.get("/quizzes/{quiz_id}/breakdown", tags=["Analytics"])
def quiz_breakdown(quiz_id: int, user: Identity = Depends(require_teacher)):
    return _ok(questions=analytics.question_breakdown(quiz_id, user.user_id))


# PUBLIC_INTERFACE
@app.get("/student/quizzes", tags=["Quizzes"])
def available_quizzes(user: Identity = Depends(require_student)):
    return _ok(quizzes=quiz.list_available_quizzes(user.user_id))


# PUBLIC_INTERFACE
@app.get("/quizzes/{quiz_id}", tags=["Quizzes"])
def take_quiz(quiz_id: int, review: bool = False, user: Identity = Depends(require_student)):
    return _ok(quiz=quiz.get_quiz_for_student(quiz_id, user.user_id, review=review))


# PUBLIC_INTERFACE
@app.post("/quizzes/{quiz_id}/submit", tags=["Quizzes"])
def submit_quiz(quiz_id: int, body: SubmissionIn, user: Identity = Depends(require_student)):
    result = scoring.submit_quiz(
        quiz_id,
        user.user_id,
        body.answers,
        body.time_taken_seconds,
        student_name=user.name,
    )
    return _ok(message="Quiz submitted and scored successfully!", **result)


# PUBLIC_INTERFACE
@app.get("/results/{result_id}", tags=["Quizzes"])
def result_detail(result_id: int, user: Identity = Depends(current_user)):
    return _ok(result=scoring.get_result_detail(result_id, user.user_id))


# PUBLIC_INTERFACE
@app.post("/explanations", tags=["Quizzes"])
def explanation(body: ExplanationIn, user: Identity = Depends(require_student)):
    found = explanations.explain(body.quiz_id, body.question_index, body.wrong_answer, student_id=user.user_id)
    return _ok(**found)


# PUBLIC_INTERFACE
@app.get("/quizzes/{quiz_id}/explanations-status", tags=["Quizzes"])
def explanations_status(quiz_id: int, user: Identity = Depends(current_user)):
    return _ok(**quiz.explanation_status(quiz_id, user.user_id, user.role))


# PUBLIC_INTERFACE
@app.get("/student/performance", tags=["Analytics"])
def student_performance(user: Identity = Depends(require_student)):
    return _ok(data=analytics.student_performance(user.user_id, window_days=get_settings().result_retention_days))


# PUBLIC_INTERFACE
@app.get("/teacher/analytics", tags=["Analytics"])
def teacher_analytics(user: Identity = Depends(require_teacher)):
    return _ok(data=analytics.teacher_analytics(user.user_id))
