"""
Assignment API routes.

Teachers create assignments and review submissions; students list the
assignments of their classes and upload a file per assignment (multipart
field `file`). A resubmission replaces the earlier file.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, File, Request, UploadFile
from pydantic import BaseModel

from backend.learning.usecases.assignments import ListStudentAssignmentsInput, SubmitAssignmentInput
from backend.web.routes.common import created, current_principal, ok, read_upload, run, services

assignments_router = APIRouter(tags=["Assignments"])


class AssignmentCreate(BaseModel):
    title: Any = None
    description: Any = None
    classId: Any = None
    deadline: Any = None


@assignments_router.post("/api/assignments/teacher")
async def create_assignment(request: Request, payload: AssignmentCreate):
    principal = await current_principal(request)
    return created(await run(services().assignments.create, principal, payload.model_dump()))


@assignments_router.get("/api/assignments/teacher")
async def list_teacher_assignments(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().assignments.list_for_teacher, principal))


@assignments_router.get("/api/assignments/teacher/{assignment_id}/submissions")
async def list_submissions(request: Request, assignment_id: str):
    principal = await current_principal(request)
    return ok(await run(services().assignments.submissions, principal, assignment_id))


@assignments_router.get("/api/assignments/student")
async def list_student_assignments(request: Request):
    principal = await current_principal(request)
    req = ListStudentAssignmentsInput(principal=principal)
    return ok(await run(services().student_assignments.execute, req))


async def _submit(request: Request, assignment_id: str, file: Optional[UploadFile]):
    principal = await current_principal(request)
    upload = await read_upload(file)
    req = SubmitAssignmentInput(principal=principal, assignment_id=assignment_id, file=upload)
    return created(await run(services().submit_assignment.execute, req))


@assignments_router.post("/api/assignments/student/{assignment_id}/submit")
async def submit_assignment(request: Request, assignment_id: str, file: Optional[UploadFile] = File(default=None)):
    """Upload a submission file.

    Behavior:
        - 201 with the stored submission (status `on-time` or `late`)
        - 400 when the file is missing or too large
        - 403 when the student is not enrolled in the assignment's class
        - 404 when the assignment does not exist
    """
    return await _submit(request, assignment_id, file)


@assignments_router.post("/api/student/assignments/{assignment_id}/submit")
async def submit_assignment_alias(
    request: Request, assignment_id: str, file: Optional[UploadFile] = File(default=None)
):
    return await _submit(request, assignment_id, file)
