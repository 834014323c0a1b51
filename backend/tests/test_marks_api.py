"""
Marks API: upload bounds, duplicate protection, class scoping and the student
notification that follows an upload.
"""
from __future__ import annotations

import pytest

pytestmark = pytest.mark.anyio("asyncio")


def _seed(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    student, student_id = campus.student(class_id)
    subject_id = campus.subject(class_id)
    exam_id = campus.exam(class_id, max_marks=100)
    return teacher, class_id, student, student_id, subject_id, exam_id


def _mark(student_id, exam_id, subject_id, value):
    return {"studentId": student_id, "examId": exam_id, "subjectId": subject_id, "marksObtained": value}


async def test_marks_above_max_are_rejected_and_nothing_is_stored(campus):
    teacher, _, student, student_id, subject_id, exam_id = _seed(campus)
    async with campus.client() as client:
        resp = await client.post("/api/marks", json=_mark(student_id, exam_id, subject_id, 150), headers=teacher.headers)

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert "max marks" in body["error"]["message"]
    assert body["error"]["statusCode"] == 400
    assert campus.repo.marks == {}
    assert campus.notifications_for(student) == []


async def test_upload_notifies_student_and_duplicate_is_conflict(campus):
    teacher, _, student, student_id, subject_id, exam_id = _seed(campus)
    async with campus.client() as client:
        first = await client.post("/api/marks", json=_mark(student_id, exam_id, subject_id, 85), headers=teacher.headers)
        second = await client.post("/api/marks", json=_mark(student_id, exam_id, subject_id, 90), headers=teacher.headers)

    assert first.status_code == 201
    assert first.json()["data"]["marks_obtained"] == 85
    assert first.headers["Cache-Control"] == "private, no-store"
    notices = campus.notifications_for(student)
    assert [n["title"] for n in notices] == ["Marks Updated"]
    assert notices[0]["link"] == "/student/marks"
    assert notices[0]["type"] == "success"

    assert second.status_code == 409
    assert second.json()["error"]["message"] == "Mark already exists for this student-subject-exam combination"
    assert [m["marks_obtained"] for m in campus.repo.marks.values()] == [85]


async def test_teacher_of_another_class_cannot_upload(campus):
    _, _, _, student_id, subject_id, exam_id = _seed(campus)
    outsider = campus.user("teacher")
    campus.klass("Class 9B", teacher=outsider)
    async with campus.client() as client:
        resp = await client.post("/api/marks", json=_mark(student_id, exam_id, subject_id, 50), headers=outsider.headers)
    assert resp.status_code == 403
    assert campus.repo.marks == {}


async def test_student_cannot_upload_marks(campus):
    _, _, student, student_id, subject_id, exam_id = _seed(campus)
    async with campus.client() as client:
        resp = await client.post("/api/marks", json=_mark(student_id, exam_id, subject_id, 50), headers=student.headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["message"] == "Only teachers and admins can upload marks"


async def test_exam_from_another_class_is_rejected(campus):
    teacher, _, _, student_id, subject_id, _ = _seed(campus)
    other_class = campus.klass("Class 9B", teacher=teacher)
    foreign_exam = campus.exam(other_class)
    async with campus.client() as client:
        resp = await client.post("/api/marks", json=_mark(student_id, foreign_exam, subject_id, 50), headers=teacher.headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Exam and subject belong to different classes"


async def test_missing_fields_are_reported_by_name(campus):
    teacher, *_ = _seed(campus)
    async with campus.client() as client:
        resp = await client.post("/api/marks", json={"marksObtained": 10}, headers=teacher.headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "studentId is required"


async def test_class_marks_scoping(campus):
    teacher, class_id, student, student_id, subject_id, exam_id = _seed(campus)
    admin = campus.user("admin")
    outsider = campus.user("teacher")
    campus.repo.insert_marks(
        [{"student_id": student_id, "exam_id": exam_id, "subject_id": subject_id, "marks_obtained": 70, "uploaded_by": teacher.user_id}]
    )
    unenrolled, _ = campus.student()

    async with campus.client() as client:
        as_teacher = await client.get(f"/api/marks/class/{class_id}", headers=teacher.headers)
        as_admin = await client.get(f"/api/marks/class/{class_id}", headers=admin.headers)
        as_outsider = await client.get(f"/api/marks/class/{class_id}", headers=outsider.headers)
        as_student = await client.get(f"/api/marks/class/{class_id}", headers=unenrolled.headers)

    assert as_teacher.status_code == 200
    assert [m["student_name"] for m in as_teacher.json()["data"]] == ["Asha Patel"]
    assert as_admin.status_code == 200
    assert as_outsider.status_code == 403
    assert as_student.status_code == 403


async def test_my_marks_returns_only_own_rows(campus):
    teacher, class_id, student, student_id, subject_id, exam_id = _seed(campus)
    classmate, classmate_id = campus.student(class_id, name="Ravi Kumar")
    campus.repo.insert_marks(
        [
            {"student_id": sid, "exam_id": exam_id, "subject_id": subject_id, "marks_obtained": v, "uploaded_by": teacher.user_id}
            for sid, v in ((student_id, 88), (classmate_id, 40))
        ]
    )
    async with campus.client() as client:
        resp = await client.get("/api/marks/me", headers=student.headers)
    assert resp.status_code == 200
    assert [m["marks_obtained"] for m in resp.json()["data"]] == [88]


async def test_update_mark_is_limited_to_uploader_and_bounded(campus):
    teacher, class_id, _, student_id, subject_id, exam_id = _seed(campus)
    [row] = campus.repo.insert_marks(
        [{"student_id": student_id, "exam_id": exam_id, "subject_id": subject_id, "marks_obtained": 60, "uploaded_by": teacher.user_id}]
    )
    co_teacher = campus.user("teacher")
    campus.repo.assign_teacher(teacher_id=co_teacher.user_id, class_id=class_id)

    async with campus.client() as client:
        too_high = await client.put(f"/api/marks/{row['id']}", json={"marksObtained": 101}, headers=teacher.headers)
        foreign = await client.put(f"/api/marks/{row['id']}", json={"marksObtained": 70}, headers=co_teacher.headers)
        updated = await client.put(f"/api/marks/{row['id']}", json={"marksObtained": 75}, headers=teacher.headers)
        missing = await client.put("/api/marks/not-a-mark", json={"marksObtained": 75}, headers=teacher.headers)

    assert too_high.status_code == 400
    assert foreign.status_code == 403
    assert updated.status_code == 200
    assert updated.json()["data"]["marks_obtained"] == 75
    assert missing.status_code == 404


async def test_bulk_upload_is_all_or_nothing(campus):
    teacher, class_id, student, student_id, subject_id, exam_id = _seed(campus)
    classmate, classmate_id = campus.student(class_id, name="Ravi Kumar")
    payload = {
        "classId": class_id,
        "examId": exam_id,
        "subjectId": subject_id,
        "marks": [{"studentId": student_id, "marksObtained": 80}, {"studentId": classmate_id, "marksObtained": 120}],
    }
    async with campus.client() as client:
        rejected = await client.post("/api/teacher/marks", json=payload, headers=teacher.headers)
        payload["marks"][1]["marksObtained"] = 65
        accepted = await client.post("/api/teacher/marks", json=payload, headers=teacher.headers)
        duplicate = await client.post("/api/teacher/marks", json=payload, headers=teacher.headers)

    assert rejected.status_code == 400
    assert accepted.status_code == 201
    assert len(accepted.json()["data"]) == 2
    assert duplicate.status_code == 409
    assert len(campus.repo.marks) == 2
    assert [n["title"] for n in campus.notifications_for(student)] == ["Marks Updated"]
    assert [n["title"] for n in campus.notifications_for(classmate)] == ["Marks Updated"]


async def test_fanout_failure_does_not_fail_the_upload():
    from backend.tests.utils.campus import CampusFixture, FailingNotificationsRepo

    campus = CampusFixture(FailingNotificationsRepo())
    teacher, _, _, student_id, subject_id, exam_id = _seed(campus)
    async with campus.client() as client:
        resp = await client.post("/api/marks", json=_mark(student_id, exam_id, subject_id, 85), headers=teacher.headers)
    assert resp.status_code == 201
    assert resp.json()["success"] is True
    assert len(campus.repo.marks) == 1
