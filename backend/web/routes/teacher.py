"""
Teacher dashboard API routes: bulk marks, attendance, announcements, subjects,
exams, performance reports and the teacher's class overview.

Permissions:
    Every write is class-scoped through the mutation gate; admins pass every
    ownership check. Reads require ownership of the class (or admin).
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.web.routes.common import created, current_principal, ok, run, services
from backend.web.routes.mcq_tests import McqTestCreate

teacher_router = APIRouter(tags=["Teacher"])


class BulkMarks(BaseModel):
    classId: Any = None
    examId: Any = None
    subjectId: Any = None
    marks: Any = None


class AttendanceBatch(BaseModel):
    classId: Any = None
    date: Any = None
    attendance: Any = None


class AnnouncementCreate(BaseModel):
    classId: Any = None
    title: Any = None
    body: Any = None


class SubjectCreate(BaseModel):
    classId: Any = None
    name: Any = None


class ExamCreate(BaseModel):
    classId: Any = None
    name: Any = None
    maxMarks: Any = None


class ReportCreate(BaseModel):
    studentId: Any = None
    classId: Any = None
    period: Any = None
    remarks: Any = None


@teacher_router.post("/api/teacher/marks")
async def upload_marks_bulk(request: Request, payload: BulkMarks):
    """Upload marks for several students at once; the batch is all-or-nothing."""
    principal = await current_principal(request)
    rows = await run(services().marks.upload_marks_bulk, principal, payload.model_dump())
    return created(rows)


@teacher_router.post("/api/teacher/attendance")
async def record_attendance(request: Request, payload: AttendanceBatch):
    principal = await current_principal(request)
    rows = await run(services().attendance.record, principal, payload.model_dump())
    return created(rows)


@teacher_router.get("/api/teacher/attendance/{class_id}")
async def class_attendance(request: Request, class_id: str, date: Optional[str] = None):
    principal = await current_principal(request)
    return ok(await run(services().attendance.class_attendance, principal, class_id, date=date))


@teacher_router.post("/api/teacher/announcement")
async def create_announcement(request: Request, payload: AnnouncementCreate):
    principal = await current_principal(request)
    row = await run(services().announcements.create, principal, payload.model_dump())
    return created(row)


@teacher_router.get("/api/teacher/announcements/{class_id}")
async def class_announcements(request: Request, class_id: str):
    principal = await current_principal(request)
    return ok(await run(services().announcements.for_class, principal, class_id))


@teacher_router.post("/api/teacher/subjects")
async def create_subject(request: Request, payload: SubjectCreate):
    principal = await current_principal(request)
    return created(await run(services().curriculum.create_subject, principal, payload.model_dump()))


@teacher_router.get("/api/teacher/subjects/{class_id}")
async def list_subjects(request: Request, class_id: str):
    principal = await current_principal(request)
    return ok(await run(services().curriculum.subjects, principal, class_id))


@teacher_router.post("/api/teacher/exams")
async def create_exam(request: Request, payload: ExamCreate):
    principal = await current_principal(request)
    return created(await run(services().curriculum.create_exam, principal, payload.model_dump()))


@teacher_router.get("/api/teacher/exams/{class_id}")
async def list_exams(request: Request, class_id: str):
    principal = await current_principal(request)
    return ok(await run(services().curriculum.exams, principal, class_id))


@teacher_router.post("/api/teacher/performance")
async def create_performance_report(request: Request, payload: ReportCreate):
    principal = await current_principal(request)
    return created(await run(services().reports.create, principal, payload.model_dump()))


@teacher_router.get("/api/teacher/stats")
async def teacher_stats(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().curriculum.teacher_stats, principal))


@teacher_router.get("/api/teacher/students")
async def teacher_students(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().curriculum.my_students, principal))


@teacher_router.post("/api/teacher/tests")
async def create_test_alias(request: Request, payload: McqTestCreate):
    principal = await current_principal(request)
    return created(await run(services().tests.create, principal, payload.model_dump()))
