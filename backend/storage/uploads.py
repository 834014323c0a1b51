"""
Generic file uploads into a fixed set of buckets.

Any signed-in role may upload. Keys always live under the uploader's own
prefix and existing objects are never overwritten.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from backend.campus.errors import ValidationError
from backend.campus.gate import GateContext, MutationGate, MutationRequest, OperationKind
from backend.identity_access.domain import Principal
from backend.storage.keys import make_user_upload_key, sanitize_filename
from backend.storage.ports import BlobStorage, UploadedFile

logger = logging.getLogger("campusflow.storage")

UPLOAD_BUCKETS = frozenset({"course-materials", "assignments", "avatars"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FileUploadService:
    storage: BlobStorage
    gate: MutationGate
    max_bytes: int = 10 * 1024 * 1024
    clock: Callable[[], datetime] = _utcnow

    def _validate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        file: Optional[UploadedFile] = payload.get("file")
        if file is None or not file.body:
            raise ValidationError("No file uploaded")
        bucket = (payload.get("bucket") or "").strip()
        if not bucket:
            raise ValidationError("Bucket name is required")
        if bucket not in UPLOAD_BUCKETS:
            raise ValidationError("Invalid bucket")
        if file.size > self.max_bytes:
            raise ValidationError(f"File exceeds the maximum size of {self.max_bytes} bytes")
        return {"file": file, "bucket": bucket, "path": payload.get("path")}

    def upload(
        self, principal: Principal, *, file: Optional[UploadedFile], bucket: Optional[str], path: Optional[str]
    ) -> dict:
        def persist(ctx: GateContext) -> dict:
            f: UploadedFile = ctx.payload["file"]
            key = make_user_upload_key(
                user_id=principal.user_id,
                filename=f.filename,
                epoch_ms=int(self.clock().timestamp() * 1000),
                folder=ctx.payload["path"],
            )
            target = ctx.payload["bucket"]
            self.storage.put_object(bucket=target, key=key, body=f.body, content_type=f.content_type)
            logger.info("Stored upload bucket=%s user=%s size=%d", target, principal.user_id[-6:], f.size)
            return {
                "path": key,
                "fullPath": f"{target}/{key}",
                "name": sanitize_filename(f.filename),
                "size": f.size,
                "type": f.content_type,
            }

        request = MutationRequest(
            kind=OperationKind.UPLOAD_FILE, actor=principal, payload={"file": file, "bucket": bucket, "path": path}
        )
        return self.gate.execute(request, validate=self._validate, persist=persist)


__all__ = ["FileUploadService", "UPLOAD_BUCKETS"]
