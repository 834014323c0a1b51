"""Student dashboard API routes. All of them act on the caller's own roster row."""
from __future__ import annotations

from fastapi import APIRouter, Request

from backend.learning.usecases.progress import StudentProgressInput
from backend.web.routes.common import current_principal, ok, run, services

student_router = APIRouter(tags=["Student"])


@student_router.get("/api/student/marks")
async def student_marks(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().student_marks.execute, StudentProgressInput(principal=principal)))


@student_router.get("/api/student/attendance")
async def student_attendance(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().attendance.my_attendance, principal))


@student_router.get("/api/student/announcements")
async def student_announcements(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().announcements.for_student, principal))


@student_router.get("/api/student/performance")
async def student_performance(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().reports.my_reports, principal))


@student_router.get("/api/student/progress")
async def student_progress(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().student_progress.execute, StudentProgressInput(principal=principal)))
