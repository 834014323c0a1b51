"""
Teacher dashboard API: attendance, announcements, subjects, exams, reports and
the class overview.
"""
from __future__ import annotations

import pytest

pytestmark = pytest.mark.anyio("asyncio")


async def test_attendance_upserts_per_day_and_notifies_absentees(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    asha, asha_id = campus.student(class_id)
    ravi, ravi_id = campus.student(class_id, name="Ravi Kumar")
    payload = {
        "classId": class_id,
        "date": "2026-03-02",
        "attendance": [{"studentId": asha_id, "status": "present"}, {"studentId": ravi_id, "status": "absent"}],
    }

    async with campus.client() as client:
        first = await client.post("/api/teacher/attendance", json=payload, headers=teacher.headers)
        payload["attendance"][1]["status"] = "late"
        again = await client.post("/api/teacher/attendance", json=payload, headers=teacher.headers)
        listed = await client.get(f"/api/teacher/attendance/{class_id}?date=2026-03-02", headers=teacher.headers)

    assert first.status_code == 201
    assert again.status_code == 201
    assert len(campus.repo.attendance) == 2
    assert sorted(r["status"] for r in listed.json()["data"]) == ["late", "present"]
    assert campus.notifications_for(asha) == []
    [notice] = campus.notifications_for(ravi)
    assert notice["title"] == "Attendance Marked"
    assert notice["type"] == "warning"


async def test_attendance_rejects_students_outside_the_class(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    _, outsider_id = campus.student()
    payload = {"classId": class_id, "attendance": [{"studentId": outsider_id, "status": "present"}]}
    async with campus.client() as client:
        resp = await client.post("/api/teacher/attendance", json=payload, headers=teacher.headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Student is not enrolled in this class"
    assert campus.repo.attendance == {}


async def test_attendance_status_must_be_known(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    _, student_id = campus.student(class_id)
    payload = {"classId": class_id, "attendance": [{"studentId": student_id, "status": "excused"}]}
    async with campus.client() as client:
        resp = await client.post("/api/teacher/attendance", json=payload, headers=teacher.headers)
    assert resp.status_code == 400


async def test_announcement_reaches_every_enrolled_student_with_an_account(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    students = [campus.student(class_id, name=f"Student {i}")[0] for i in range(3)]
    campus.roster_student("No Account", class_id=class_id)
    other_class_student, _ = campus.student(campus.klass("Class 9B"))

    async with campus.client() as client:
        resp = await client.post(
            "/api/teacher/announcement",
            json={"classId": class_id, "title": "Sports day", "body": "Friday on the main field"},
            headers=teacher.headers,
        )
        listed = await client.get(f"/api/teacher/announcements/{class_id}", headers=teacher.headers)
        as_student = await client.get("/api/student/announcements", headers=students[0].headers)

    assert resp.status_code == 201
    for student in students:
        assert [n["message"] for n in campus.notifications_for(student)] == ["Sports day"]
    assert campus.notifications_for(other_class_student) == []
    assert len(campus.repo.notifications) == 3
    assert [a["title"] for a in listed.json()["data"]] == ["Sports day"]
    assert [a["title"] for a in as_student.json()["data"]] == ["Sports day"]


async def test_announcement_title_is_required(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    async with campus.client() as client:
        resp = await client.post(
            "/api/teacher/announcement", json={"classId": class_id, "body": "x"}, headers=teacher.headers
        )
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "title is required"


async def test_subjects_and_exams(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    outsider = campus.user("teacher")
    async with campus.client() as client:
        subject = await client.post(
            "/api/teacher/subjects", json={"classId": class_id, "name": "Physics"}, headers=teacher.headers
        )
        exam = await client.post("/api/teacher/exams", json={"classId": class_id, "name": "Unit 1"}, headers=teacher.headers)
        bad_exam = await client.post(
            "/api/teacher/exams", json={"classId": class_id, "name": "Unit 2", "maxMarks": 0}, headers=teacher.headers
        )
        denied = await client.post(
            "/api/teacher/subjects", json={"classId": class_id, "name": "Art"}, headers=outsider.headers
        )
        subjects = await client.get(f"/api/teacher/subjects/{class_id}", headers=teacher.headers)
        exams = await client.get(f"/api/teacher/exams/{class_id}", headers=teacher.headers)

    assert subject.status_code == 201
    assert exam.status_code == 201
    assert exam.json()["data"]["max_marks"] == 100
    assert bad_exam.status_code == 400
    assert denied.status_code == 403
    assert [s["name"] for s in subjects.json()["data"]] == ["Physics"]
    assert [e["name"] for e in exams.json()["data"]] == ["Unit 1"]


async def test_performance_report_combines_marks_and_attendance(campus):
    teacher = campus.user("teacher")
    class_id = campus.klass(teacher=teacher)
    student, student_id = campus.student(class_id)
    subject_id = campus.subject(class_id)
    exam_id = campus.exam(class_id, max_marks=50)
    campus.repo.insert_marks(
        [{"student_id": student_id, "exam_id": exam_id, "subject_id": subject_id, "marks_obtained": 40, "uploaded_by": teacher.user_id}]
    )
    campus.repo.upsert_attendance(
        [
            {"class_id": class_id, "student_id": student_id, "date": d, "status": s, "marked_by": teacher.user_id}
            for d, s in (("2026-03-02", "present"), ("2026-03-03", "late"), ("2026-03-04", "absent"), ("2026-03-05", "present"))
        ]
    )
    async with campus.client() as client:
        resp = await client.post(
            "/api/teacher/performance",
            json={"studentId": student_id, "classId": class_id, "period": "Term 1", "remarks": "Steady"},
            headers=teacher.headers,
        )
        mine = await client.get("/api/student/performance", headers=student.headers)

    assert resp.status_code == 201
    report = resp.json()["data"]
    assert report["avg_marks"] == 80.0
    assert report["attendance_pct"] == 75.0
    assert (report["total_present"], report["total_absent"], report["total_exams"]) == (3, 1, 1)
    assert [r["period"] for r in mine.json()["data"]] == ["Term 1"]
    assert [n["title"] for n in campus.notifications_for(student)] == ["Performance Report Available"]


async def test_teacher_stats_and_students(campus):
    teacher = campus.user("teacher")
    first = campus.klass("Class 10A", teacher=teacher)
    second = campus.klass("Class 10B", teacher=teacher)
    _, shared_id = campus.student(first)
    campus.repo.create_enrollment(student_id=shared_id, class_id=second)
    campus.student(second, name="Ravi Kumar")
    campus.student(campus.klass("Class 9C"), name="Other Class")

    async with campus.client() as client:
        stats = await client.get("/api/teacher/stats", headers=teacher.headers)
        students = await client.get("/api/teacher/students", headers=teacher.headers)

    assert stats.json()["data"] == {"totalClasses": 2, "totalStudents": 2}
    assert sorted(s["name"] for s in students.json()["data"]) == ["Asha Patel", "Ravi Kumar"]
