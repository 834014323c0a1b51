"""
Notification inbox API routes.

Users only ever see and update their own notifications; another user's id is
reported as 404. Direct sends are admin-only.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from backend.web.routes.common import created, current_principal, ok, run, services

notifications_router = APIRouter(tags=["Notifications"])


class NotificationCreate(BaseModel):
    userId: Any = None
    title: Any = None
    message: Any = None
    type: Any = None
    link: Any = None


@notifications_router.get("/api/notifications")
async def list_notifications(request: Request, limit: Optional[int] = Query(default=None)):
    principal = await current_principal(request)
    return ok(await run(services().inbox.list_mine, principal, limit=limit))


@notifications_router.get("/api/notifications/unread-count")
async def unread_count(request: Request):
    principal = await current_principal(request)
    count = await run(services().inbox.unread_count, principal)
    return ok({"count": count})


@notifications_router.patch("/api/notifications/read-all")
async def mark_all_read(request: Request):
    principal = await current_principal(request)
    count = await run(services().inbox.mark_all_read, principal)
    return ok({"updated": count})


@notifications_router.patch("/api/notifications/{notification_id}/read")
async def mark_read(request: Request, notification_id: str):
    principal = await current_principal(request)
    return ok(await run(services().inbox.mark_read, principal, notification_id))


@notifications_router.post("/api/notifications")
async def send_notification(request: Request, payload: NotificationCreate):
    principal = await current_principal(request)
    return created(await run(services().admin.send_notification, principal, payload.model_dump()))
