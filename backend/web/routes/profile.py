"""
Profile API routes (teachers and students; admins have no profile).

Completion:
    The client checks `/api/profile-completion/status` after sign-in and sends
    incomplete users to the role's completion form. Admins always report
    complete.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, File, Request, UploadFile
from pydantic import BaseModel

from backend.identity_access.domain import Role
from backend.web.routes.common import current_principal, ok, read_upload, run, services

profile_router = APIRouter(tags=["Profile"])


class StudentCompletion(BaseModel):
    firstName: Any = None
    lastName: Any = None
    dob: Any = None
    address: Any = None
    branch: Any = None
    degree: Any = None
    registrationNumber: Any = None


class TeacherCompletion(BaseModel):
    firstName: Any = None
    lastName: Any = None
    dob: Any = None
    address: Any = None
    department: Any = None
    qualification: Any = None
    experienceYears: Any = None
    subjectsTaught: Any = None


class StudentDetails(BaseModel):
    rollNo: Any = None
    classId: Any = None
    admissionYear: Any = None


class TeacherDetails(BaseModel):
    department: Any = None
    qualification: Any = None
    experienceYears: Any = None


@profile_router.get("/api/profile/me")
async def my_profile(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().profiles.my_profile, principal))


@profile_router.put("/api/profile/student")
async def update_student_profile(request: Request, payload: StudentDetails):
    principal = await current_principal(request)
    return ok(await run(services().profiles.update_student_details, principal, payload.model_dump()))


@profile_router.put("/api/profile/teacher")
async def update_teacher_profile(request: Request, payload: TeacherDetails):
    principal = await current_principal(request)
    return ok(await run(services().profiles.update_teacher_details, principal, payload.model_dump()))


@profile_router.post("/api/profile/photo")
async def upload_photo(request: Request, photo: Optional[UploadFile] = File(default=None)):
    principal = await current_principal(request)
    upload = await read_upload(photo)
    return ok(await run(services().profile.upload, principal, upload))


@profile_router.delete("/api/profile/photo")
async def delete_photo(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().profile.remove, principal))


@profile_router.get("/api/profile-completion/status")
async def completion_status(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().profiles.completion_status, principal))


@profile_router.post("/api/profile-completion/student")
async def complete_student_profile(request: Request, payload: StudentCompletion):
    """Save the mandatory student fields and flag the profile complete.

    Behavior:
        - 200 with the saved profile and its student details
        - 400 naming every missing field (firstName, lastName, branch, degree, registrationNumber)
        - 403 for teachers and admins
    """
    principal = await current_principal(request)
    return ok(await run(services().profiles.complete, principal, Role.STUDENT, payload.model_dump()))


@profile_router.post("/api/profile-completion/teacher")
async def complete_teacher_profile(request: Request, payload: TeacherCompletion):
    principal = await current_principal(request)
    return ok(await run(services().profiles.complete, principal, Role.TEACHER, payload.model_dump()))
