"""
MCQ tests API: scheduling, question publishing, the student's answer window,
scoring, and the single-submission rule.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.learning.usecases.mcq import score_answers

pytestmark = pytest.mark.anyio("asyncio")


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


QUESTIONS = [
    {"question": "2 + 2 = ?", "options": ["3", "4", "5"], "correctAnswer": "4"},
    {"question": "Capital of France?", "options": ["Paris", "Rome"], "correctAnswer": "Paris"},
]


async def _published_test(campus, client, teacher, class_id, *, start=timedelta(hours=-1), end=timedelta(hours=1)):
    created = await client.post(
        "/api/tests/teacher",
        json={"title": "Quiz 1", "classId": class_id, "duration": 20, "startDate": _iso(start), "endDate": _iso(end)},
        headers=teacher.headers,
    )
    assert created.status_code == 201
    test_id = created.json()["data"]["id"]
    added = await client.post(f"/api/tests/teacher/{test_id}/questions", json={"questions": QUESTIONS}, headers=teacher.headers)
    assert added.status_code == 201
    return test_id, {q["question"]: q["id"] for q in added.json()["data"]}


async def test_student_takes_and_submits_once(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    student, _ = campus.student(class_id)

    async with campus.client() as client:
        test_id, ids = await _published_test(campus, client, teacher, class_id)
        listed = await client.get("/api/tests/student", headers=student.headers)
        paper = await client.get(f"/api/tests/student/{test_id}", headers=student.headers)
        answers = {ids["2 + 2 = ?"]: "4", ids["Capital of France?"]: "Rome"}
        first = await client.post(f"/api/tests/student/{test_id}/submit", json={"answers": answers}, headers=student.headers)
        second = await client.post(f"/api/student/tests/{test_id}/submit", json={"answers": answers}, headers=student.headers)
        reopen = await client.get(f"/api/tests/student/{test_id}", headers=student.headers)
        results = await client.get(f"/api/tests/teacher/{test_id}/results", headers=teacher.headers)

    assert [t["title"] for t in listed.json()["data"]] == ["Quiz 1"]
    questions = paper.json()["data"]["questions"]
    assert len(questions) == 2
    assert all("correct_answer" not in q for q in questions)

    assert first.status_code == 201
    assert first.json()["data"]["score"] == 1
    assert first.json()["data"]["totalQuestions"] == 2
    assert second.status_code == 409
    assert second.json()["error"]["message"] == "You have already submitted this test"
    assert len(campus.repo.test_submissions) == 1
    assert reopen.status_code == 400

    body = results.json()["data"]
    assert body["totalQuestions"] == 2
    assert [s["score"] for s in body["submissions"]] == [1]


async def test_publishing_notifies_enrolled_students(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    student, _ = campus.student(class_id)
    async with campus.client() as client:
        await _published_test(campus, client, teacher, class_id)
    titles = sorted(n["title"] for n in campus.notifications_for(student))
    assert titles == ["New MCQ Test", "New Test Published"]


async def test_window_is_enforced(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    student, _ = campus.student(class_id)
    async with campus.client() as client:
        future_id, ids = await _published_test(campus, client, teacher, class_id, start=timedelta(days=1), end=timedelta(days=2))
        past_id, past_ids = await _published_test(
            campus, client, teacher, class_id, start=timedelta(days=-2), end=timedelta(days=-1)
        )
        early = await client.post(
            f"/api/tests/student/{future_id}/submit", json={"answers": {ids["2 + 2 = ?"]: "4"}}, headers=student.headers
        )
        late = await client.post(
            f"/api/tests/student/{past_id}/submit", json={"answers": {past_ids["2 + 2 = ?"]: "4"}}, headers=student.headers
        )
        early_paper = await client.get(f"/api/tests/student/{future_id}", headers=student.headers)

    assert early.status_code == 400
    assert early.json()["error"]["message"] == "Test has not started yet"
    assert late.status_code == 400
    assert late.json()["error"]["message"] == "Test has ended"
    assert early_paper.status_code == 400
    assert campus.repo.test_submissions == {}


async def test_unenrolled_student_and_empty_answers(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    student, _ = campus.student(class_id)
    outsider, _ = campus.student()
    async with campus.client() as client:
        test_id, ids = await _published_test(campus, client, teacher, class_id)
        denied = await client.post(
            f"/api/tests/student/{test_id}/submit", json={"answers": {ids["2 + 2 = ?"]: "4"}}, headers=outsider.headers
        )
        empty = await client.post(f"/api/tests/student/{test_id}/submit", json={"answers": {}}, headers=student.headers)
        paper = await client.get(f"/api/tests/student/{test_id}", headers=outsider.headers)

    assert denied.status_code == 403
    assert empty.status_code == 400
    assert paper.status_code == 403


async def test_invalid_schedule_and_questions(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    async with campus.client() as client:
        backwards = await client.post(
            "/api/teacher/tests",
            json={"title": "Quiz", "classId": class_id, "duration": 20, "startDate": _iso(timedelta(hours=2)), "endDate": _iso(timedelta(hours=1))},
            headers=teacher.headers,
        )
        test_id, _ = await _published_test(campus, client, teacher, class_id)
        bad_answer = await client.post(
            f"/api/tests/teacher/{test_id}/questions",
            json={"questions": [{"question": "Pick", "options": ["a", "b"], "correctAnswer": "c"}]},
            headers=teacher.headers,
        )
    assert backwards.status_code == 400
    assert backwards.json()["error"]["message"] == "endDate must be after startDate"
    assert bad_answer.status_code == 400


async def test_only_creator_adds_questions_or_sees_results(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    co_teacher = campus.user("teacher")
    campus.repo.assign_teacher(teacher_id=co_teacher.user_id, class_id=class_id)
    async with campus.client() as client:
        test_id, _ = await _published_test(campus, client, teacher, class_id)
        add = await client.post(f"/api/tests/teacher/{test_id}/questions", json={"questions": QUESTIONS}, headers=co_teacher.headers)
        results = await client.get(f"/api/tests/teacher/{test_id}/results", headers=co_teacher.headers)
    assert add.status_code == 403
    assert results.status_code == 403


def test_score_ignores_unknown_question_ids():
    questions = [{"id": "q1", "correct_answer": "4"}, {"id": "q2", "correct_answer": "Paris"}]
    assert score_answers(questions, {"q1": "4", "q2": " Paris ", "q9": "4"}) == 2
    assert score_answers(questions, {"q1": "5"}) == 0
