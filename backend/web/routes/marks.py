"""
Marks API routes.

Permissions:
    Uploads and updates are teacher/admin only and class-scoped; the student's
    own view resolves the roster row through the caller's email.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.web.routes.common import created, current_principal, ok, run, services

marks_router = APIRouter(tags=["Marks"])


class MarkUpload(BaseModel):
    studentId: Any = None
    examId: Any = None
    subjectId: Any = None
    marksObtained: Any = None


class MarkUpdate(BaseModel):
    marksObtained: Any = None


@marks_router.post("/api/marks")
async def upload_mark(request: Request, payload: MarkUpload):
    """Upload one mark.

    Behavior:
        - 201 with the stored mark; the student receives a "Marks Updated" notice
        - 400 when marks exceed the exam's max marks or the exam belongs to another class
        - 403 when the caller does not own the subject's class
        - 409 when the student already has a mark for this subject and exam
    """
    principal = await current_principal(request)
    row = await run(services().marks.upload_mark, principal, payload.model_dump())
    return created(row)


@marks_router.put("/api/marks/{mark_id}")
async def update_mark(request: Request, mark_id: str, payload: MarkUpdate):
    principal = await current_principal(request)
    row = await run(services().marks.update_mark, principal, mark_id, payload.model_dump())
    return ok(row)


@marks_router.get("/api/marks/me")
async def my_marks(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().marks.my_marks, principal))


@marks_router.get("/api/marks/class/{class_id}")
async def class_marks(request: Request, class_id: str):
    principal = await current_principal(request)
    return ok(await run(services().marks.class_marks, principal, class_id))


@marks_router.get("/api/marks/exam/{exam_id}")
async def exam_marks(request: Request, exam_id: str):
    principal = await current_principal(request)
    return ok(await run(services().marks.exam_marks, principal, exam_id))
