"""Generic file upload route (any signed-in role)."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile

from backend.web.routes.common import created, current_principal, read_upload, run, services

uploads_router = APIRouter(tags=["Uploads"])


@uploads_router.post("/api/upload")
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    bucket: Optional[str] = Form(default=None),
    path: Optional[str] = Form(default=None),
):
    """Store a file in one of the upload buckets.

    Behavior:
        - 201 with {path, fullPath, name, size, type}
        - 400 when the file or bucket is missing, or the bucket is not one of
          course-materials, assignments, avatars
    """
    principal = await current_principal(request)
    upload = await read_upload(file)
    return created(await run(services().uploads.upload, principal, file=upload, bucket=bucket, path=path))
