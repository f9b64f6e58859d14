import json

import pytest
from fastapi.testclient import TestClient

from conftest import LECTURE_TEXT, FakeQuizModel, sample_questions
from quizai.api import app, get_quiz_model
from quizai.errors import QuotaExceededError


@pytest.fixture
def model():
    return FakeQuizModel(reply=json.dumps(sample_questions(correct={0: "B", 1: "C"})))


@pytest.fixture
def client(model):
    app.dependency_overrides[get_quiz_model] = lambda: model
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _as(user, role):
    return {"X-User-Id": str(user.id), "X-User-Role": role, "X-User-Name": user.full_name}


def _upload(client, teacher, classroom, text=LECTURE_TEXT):
    resp = client.post(
        "/lectures",
        json={"title": "Photosynthesis", "extractedText": text, "classId": classroom.id},
        headers=_as(teacher, "teacher"),
    )
    assert resp.status_code == 201
    return resp.json()["lecture"]


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_missing_identity_is_401(client):
    resp = client.get("/lectures")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Authentication required."}


def test_student_cannot_use_teacher_routes(client, student):
    resp = client.get("/lectures", headers=_as(student, "student"))
    assert resp.status_code == 403
    assert resp.json()["success"] is False


def test_full_quiz_flow(client, teacher, student, classroom):
    lecture = _upload(client, teacher, classroom)
    assert lecture["processingStatus"] == "pending"

    resp = client.post(f"/lectures/{lecture['id']}/quiz", headers=_as(teacher, "teacher"))
    assert resp.status_code == 201
    body = resp.json()
    assert body["totalQuestions"] == 10
    quiz_id = body["quizId"]

    listed = client.get("/lectures", headers=_as(teacher, "teacher")).json()["lectures"]
    assert listed[0]["processingStatus"] == "completed"
    assert listed[0]["quizGenerated"] is True

    available = client.get("/student/quizzes", headers=_as(student, "student")).json()["quizzes"]
    assert [q["id"] for q in available] == [quiz_id]

    quiz = client.get(f"/quizzes/{quiz_id}", headers=_as(student, "student")).json()["quiz"]
    assert len(quiz["questions"]) == 10
    assert "correctAnswer" not in json.dumps(quiz)
    assert set(quiz["questions"][0]["options"]) == {"A", "B", "C", "D"}

    resp = client.post(
        f"/quizzes/{quiz_id}/submit",
        json={"answers": [{"questionIndex": 0, "selectedOption": "B"},
                          {"questionIndex": 1, "selectedOption": "A"}],
              "timeTakenSeconds": 120},
        headers=_as(student, "student"),
    )
    assert resp.status_code == 200
    result = resp.json()
    assert (result["score"], result["totalQuestions"], result["percentage"]) == (1, 10, 10.0)
    assert result["questionDetails"][1]["correctAnswer"] == "C"

    again = client.get(f"/quizzes/{quiz_id}", headers=_as(student, "student"))
    assert again.status_code == 409
    assert again.json()["quizTitle"] == "Photosynthesis"

    resp = client.post(
        "/explanations",
        json={"quizId": quiz_id, "questionIndex": 1, "wrongAnswer": "A"},
        headers=_as(student, "student"),
    )
    assert resp.status_code == 200
    assert resp.json()["explanationType"] == "detailed"
    assert "Why C is correct" in resp.json()["explanation"]

    detail = client.get(f"/results/{result['resultId']}", headers=_as(teacher, "teacher")).json()["result"]
    assert detail["score"] == 1

    ranked = client.get(f"/lectures/{lecture['id']}/results", headers=_as(teacher, "teacher")).json()["results"]
    assert ranked[0]["studentName"] == "Sam Student"

    perf = client.get("/student/performance", headers=_as(student, "student")).json()["data"]
    assert perf["studentStats"]["totalQuizzes"] == 1

    stats = client.get("/teacher/analytics", headers=_as(teacher, "teacher")).json()["data"]
    assert stats["overallStats"]["totalResults"] == 1

    breakdown = client.get(f"/quizzes/{quiz_id}/breakdown", headers=_as(teacher, "teacher")).json()["questions"]
    assert breakdown[1]["mostCommonWrongAnswer"] == "A"

    coverage = client.get(f"/quizzes/{quiz_id}/explanations-status", headers=_as(student, "student")).json()
    assert coverage["enhancementLevel"] == "full"


def test_duplicate_submission_is_409(client, quiz, student):
    payload = {"answers": [], "timeTakenSeconds": 10}
    assert client.post(f"/quizzes/{quiz.id}/submit", json=payload, headers=_as(student, "student")).status_code == 200
    resp = client.post(f"/quizzes/{quiz.id}/submit", json=payload, headers=_as(student, "student"))
    assert resp.status_code == 409
    assert resp.json()["message"] == "You have already submitted this quiz."


def test_invalid_body_is_400(client, quiz, student):
    resp = client.post(
        f"/quizzes/{quiz.id}/submit",
        json={"answers": [], "timeTakenSeconds": -5},
        headers=_as(student, "student"),
    )
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_short_text_generation_is_400(client, teacher, classroom):
    lecture = _upload(client, teacher, classroom, text="too short")
    resp = client.post(f"/lectures/{lecture['id']}/quiz", headers=_as(teacher, "teacher"))
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Text too short for quiz generation"}


def test_quota_error_is_429(client, model, teacher, classroom):
    model.error = QuotaExceededError("API quota exceeded. Please try again later.")
    lecture = _upload(client, teacher, classroom)
    resp = client.post(f"/lectures/{lecture['id']}/quiz", headers=_as(teacher, "teacher"))
    assert resp.status_code == 429
    assert "try again later" in resp.json()["message"]


def test_not_enrolled_is_403(client, quiz, other_student):
    resp = client.get(f"/quizzes/{quiz.id}", headers=_as(other_student, "student"))
    assert resp.status_code == 403


def test_toggle_active_and_delete(client, quiz, lecture, teacher, student):
    resp = client.patch(f"/quizzes/{quiz.id}/active", json={"isActive": False}, headers=_as(teacher, "teacher"))
    assert resp.json()["isActive"] is False
    assert client.get("/student/quizzes", headers=_as(student, "student")).json()["quizzes"] == []

    assert client.delete(f"/lectures/{lecture.id}", headers=_as(teacher, "teacher")).status_code == 200
    assert client.get(f"/lectures/{lecture.id}/text", headers=_as(teacher, "teacher")).status_code == 404


@pytest.fixture
def unconfigured_client(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    from quizai.config import get_settings
    get_settings.cache_clear()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


def test_generation_checks_lecture_before_model(unconfigured_client, teacher, student, classroom):
    resp = unconfigured_client.post("/lectures/9999/quiz", headers=_as(teacher, "teacher"))
    assert resp.status_code == 404

    lecture = _upload(unconfigured_client, teacher, classroom)
    resp = unconfigured_client.post(f"/lectures/{lecture['id']}/quiz", headers=_as(student, "teacher"))
    assert resp.status_code == 403


def test_missing_api_key_marks_lecture_failed(unconfigured_client, teacher, classroom):
    lecture = _upload(unconfigured_client, teacher, classroom)
    resp = unconfigured_client.post(f"/lectures/{lecture['id']}/quiz", headers=_as(teacher, "teacher"))
    assert resp.status_code == 502
    assert "GROQ_API_KEY" in resp.json()["message"]

    listed = unconfigured_client.get("/lectures", headers=_as(teacher, "teacher")).json()["lectures"]
    assert listed[0]["processingStatus"] == "failed"
    assert "GROQ_API_KEY" in listed[0]["generationError"]


def test_explanation_status_requires_access(client, quiz, teacher, student, other_student):
    url = f"/quizzes/{quiz.id}/explanations-status"
    assert client.get(url, headers=_as(student, "student")).status_code == 200
    assert client.get(url, headers=_as(teacher, "teacher")).status_code == 200
    assert client.get(url, headers=_as(other_student, "student")).status_code == 403
    assert client.get(url, headers=_as(other_student, "teacher")).status_code == 403
