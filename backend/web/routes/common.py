"""
Helpers shared by the CampusFlow API routers.

Every API response is personalized, so every helper sets
`Cache-Control: private, no-store`. Blocking service calls are moved off the
event loop with `asyncio.to_thread`.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, TypeVar

from fastapi import Request, UploadFile
from fastapi.responses import JSONResponse

from backend.campus.errors import CampusError, Unauthenticated
from backend.identity_access.domain import Principal
from backend.storage.ports import UploadedFile
from backend.web.wiring import Services, get_services

T = TypeVar("T")

PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}


def ok(data: Any = None, *, status_code: int = 200, **extra: Any) -> JSONResponse:
    body = {"success": True, "data": data}
    body.update(extra)
    return JSONResponse(body, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def created(data: Any) -> JSONResponse:
    return ok(data, status_code=201)


def error_response(exc: CampusError) -> JSONResponse:
    return JSONResponse(exc.to_envelope(), status_code=exc.status_code, headers=dict(PRIVATE_HEADERS))


def services() -> Services:
    return get_services()


async def run(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    return await asyncio.to_thread(fn, *args, **kwargs)


async def current_principal(request: Request) -> Principal:
    """Resolve the caller's role from persisted state; nothing is cached across requests."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise Unauthenticated()
    return await run(services().oracle.principal_for, identity)


async def read_upload(upload: Optional[UploadFile]) -> Optional[UploadedFile]:
    if upload is None:
        return None
    body = await upload.read()
    return UploadedFile(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        body=body,
    )


__all__ = ["PRIVATE_HEADERS", "created", "current_principal", "error_response", "ok", "read_upload", "run", "services"]
