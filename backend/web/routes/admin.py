"""
Role lookup and administration API routes.

Permissions:
    `/api/roles/me` is open to any authenticated user. Everything under
    `/api/admin` requires the admin role; an admin cannot change their own role.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.campus.errors import NotFound, RoleNotFound
from backend.web.routes.common import created, current_principal, ok, run, services

admin_router = APIRouter(tags=["Admin"])


class RoleChange(BaseModel):
    role: Any = None


class TeacherClassAssign(BaseModel):
    teacherId: Any = None
    classId: Any = None


@admin_router.get("/api/roles/me")
async def my_role(request: Request):
    """Return the caller's role; 404 when no role has been assigned yet."""
    try:
        principal = await current_principal(request)
    except RoleNotFound:
        raise NotFound("Role not found") from None
    return ok(await run(services().admin.my_role, principal))


@admin_router.get("/api/admin/users")
async def list_users(request: Request, role: Optional[str] = None):
    principal = await current_principal(request)
    return ok(await run(services().admin.list_users, principal, role=role))


@admin_router.patch("/api/admin/users/{user_id}/role")
async def change_role(request: Request, user_id: str, payload: RoleChange):
    principal = await current_principal(request)
    return ok(await run(services().admin.change_role, principal, user_id, payload.model_dump()))


@admin_router.post("/api/admin/teacher-classes")
async def assign_teacher(request: Request, payload: TeacherClassAssign):
    principal = await current_principal(request)
    return created(await run(services().admin.assign_teacher, principal, payload.model_dump()))


@admin_router.delete("/api/admin/teacher-classes/{teacher_id}/{class_id}")
async def unassign_teacher(request: Request, teacher_id: str, class_id: str):
    principal = await current_principal(request)
    await run(services().admin.unassign_teacher, principal, teacher_id, class_id)
    return ok(None)
