"""Class, roster and enrollment API routes."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.web.routes.common import created, current_principal, ok, run, services

classes_router = APIRouter(tags=["Classes"])


class ClassCreate(BaseModel):
    name: Any = None


class StudentCreate(BaseModel):
    name: Any = None
    email: Any = None


class EnrollmentCreate(BaseModel):
    studentId: Any = None
    classId: Any = None


# --- Classes -------------------------------------------------------------------


@classes_router.post("/api/classes")
async def create_class(request: Request, payload: ClassCreate):
    principal = await current_principal(request)
    return created(await run(services().classes.create, principal, payload.model_dump()))


@classes_router.get("/api/classes")
async def list_classes(request: Request):
    """Admin: all classes; teacher: owned classes; student: enrolled classes."""
    principal = await current_principal(request)
    return ok(await run(services().classes.visible, principal))


@classes_router.get("/api/classes/teacher")
async def list_teacher_classes(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().classes.teacher_classes, principal))


@classes_router.get("/api/classes/{class_id}")
async def get_class(request: Request, class_id: str):
    principal = await current_principal(request)
    return ok(await run(services().classes.get, principal, class_id))


@classes_router.delete("/api/classes/{class_id}")
async def delete_class(request: Request, class_id: str):
    principal = await current_principal(request)
    await run(services().classes.delete, principal, class_id)
    return ok(None)


# --- Roster --------------------------------------------------------------------


@classes_router.post("/api/students")
async def create_student(request: Request, payload: StudentCreate):
    principal = await current_principal(request)
    return created(await run(services().roster.create, principal, payload.model_dump()))


@classes_router.get("/api/students")
async def list_students(request: Request, page: Optional[str] = None, limit: Optional[str] = None):
    principal = await current_principal(request)
    result = await run(services().roster.list, principal, page=page, limit=limit)
    return ok(result["students"], meta=result["meta"])


@classes_router.get("/api/students/{student_id}")
async def get_student(request: Request, student_id: str):
    principal = await current_principal(request)
    return ok(await run(services().roster.get, principal, student_id))


@classes_router.put("/api/students/{student_id}")
async def update_student(request: Request, student_id: str, payload: StudentCreate):
    principal = await current_principal(request)
    return ok(await run(services().roster.update, principal, student_id, payload.model_dump()))


@classes_router.delete("/api/students/{student_id}")
async def delete_student(request: Request, student_id: str):
    principal = await current_principal(request)
    await run(services().roster.delete, principal, student_id)
    return ok(None)


# --- Enrollments ---------------------------------------------------------------


@classes_router.post("/api/enrollments")
async def enroll_student(request: Request, payload: EnrollmentCreate):
    """Enroll a roster student in a class (class owner or admin).

    Behavior:
        - 201 with the enrollment; the student receives "Enrollment Successful"
        - 404 when the class or student does not exist
        - 409 "Student already enrolled in this class"
    """
    principal = await current_principal(request)
    return created(await run(services().enrollments.enroll, principal, payload.model_dump()))


@classes_router.get("/api/enrollments/class/{class_id}")
async def class_enrollments(request: Request, class_id: str, page: Optional[str] = None, limit: Optional[str] = None):
    principal = await current_principal(request)
    result = await run(services().enrollments.for_class, principal, class_id, page=page, limit=limit)
    return ok(result["enrollments"], meta=result["meta"])


@classes_router.get("/api/enrollments/student/{student_id}")
async def student_enrollments(request: Request, student_id: str):
    principal = await current_principal(request)
    return ok(await run(services().enrollments.for_student, principal, student_id))


@classes_router.delete("/api/enrollments/{student_id}/{class_id}")
async def unenroll_student(request: Request, student_id: str, class_id: str):
    principal = await current_principal(request)
    await run(services().enrollments.unenroll, principal, student_id, class_id)
    return ok(None)
