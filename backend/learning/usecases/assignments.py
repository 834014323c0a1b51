from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from backend.campus.errors import ValidationError
from backend.campus.gate import EnrolledStudentScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import as_datetime
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Notice, NotificationType, SingleUser
from backend.storage.keys import make_assignment_submission_key
from backend.storage.ports import BlobStorage, UploadedFile

logger = logging.getLogger("campusflow.storage")

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class StudentAssignmentsRepoProtocol(Protocol):
    def list_class_ids_for_student(self, student_id: str) -> List[str]: ...

    def list_assignments(self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None) -> List[dict]: ...

    def list_assignment_submissions(self, *, assignment_id: Optional[str] = None, student_id: Optional[str] = None) -> List[dict]: ...

    def upsert_assignment_submission(self, row: Dict[str, Any]) -> dict: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ListStudentAssignmentsInput:
    principal: Principal


class ListStudentAssignmentsUseCase:
    def __init__(self, repo: StudentAssignmentsRepoProtocol, oracle: RoleOwnershipOracle) -> None:
        self._repo = repo
        self._oracle = oracle

    def execute(self, req: ListStudentAssignmentsInput) -> List[dict]:
        """Assignments of the student's enrolled classes, each with `submission` (or None)."""
        require_role(req.principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self._oracle.resolve_student_identity(req.principal)
        class_ids = self._repo.list_class_ids_for_student(student_id)
        if not class_ids:
            return []
        mine = {s["assignment_id"]: s for s in self._repo.list_assignment_submissions(student_id=student_id)}
        return [{**a, "submission": mine.get(a["id"])} for a in self._repo.list_assignments(class_ids=class_ids)]


@dataclass
class SubmitAssignmentInput:
    principal: Principal
    assignment_id: str
    file: Optional[UploadedFile]


class SubmitAssignmentUseCase:
    """Upload a submission file and record it against the assignment.

    A resubmission replaces the previous file URL and status. The submission
    is `late` when it arrives after the deadline. The assignment's creator is
    notified once the row is stored.
    """

    def __init__(
        self,
        repo: StudentAssignmentsRepoProtocol,
        gate: MutationGate,
        storage: BlobStorage,
        *,
        bucket: str = "campusflow-assets",
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._gate = gate
        self._storage = storage
        self._bucket = bucket
        self._max_bytes = max_bytes
        self._clock = clock

    def _validate(self, file: Optional[UploadedFile]) -> UploadedFile:
        if file is None or not file.body:
            raise ValidationError("File is required")
        if file.size > self._max_bytes:
            raise ValidationError(f"File exceeds the maximum size of {self._max_bytes} bytes")
        return file

    def execute(self, req: SubmitAssignmentInput) -> dict:
        request = MutationRequest(
            kind=OperationKind.SUBMIT_ASSIGNMENT,
            actor=req.principal,
            scope=EnrolledStudentScope("assignment", req.assignment_id),
            payload=req.file,
        )

        def persist(ctx: GateContext) -> dict:
            file: UploadedFile = ctx.payload
            now = self._clock()
            key = make_assignment_submission_key(
                assignment_id=req.assignment_id,
                student_id=str(ctx.student_id),
                filename=file.filename,
                epoch_ms=int(now.timestamp() * 1000),
            )
            self._storage.put_object(
                bucket=self._bucket, key=key, body=file.body, content_type=file.content_type or "application/octet-stream"
            )
            url = self._storage.public_url(bucket=self._bucket, key=key)
            logger.info("Stored submission assignment=%s size=%d", req.assignment_id[-6:], file.size)
            deadline = as_datetime(ctx.facts["assignment"].get("deadline"))
            status = "late" if deadline is not None and now > deadline else "on-time"
            return self._repo.upsert_assignment_submission(
                {
                    "assignment_id": req.assignment_id,
                    "student_id": ctx.student_id,
                    "file_url": url,
                    "submitted_at": now.isoformat(),
                    "status": status,
                }
            )

        def notify(ctx: GateContext, row: dict):
            assignment = ctx.facts["assignment"]
            creator = assignment.get("created_by")
            if creator:
                yield SingleUser(str(creator)), Notice(
                    title="New Submission",
                    message=f"Student submitted assignment: {assignment['title']}",
                    type=NotificationType.ASSIGNMENT,
                    link="/teacher/assignments",
                )

        return self._gate.execute(request, validate=self._validate, persist=persist, notify=notify)


__all__ = [
    "ListStudentAssignmentsInput",
    "ListStudentAssignmentsUseCase",
    "SubmitAssignmentInput",
    "SubmitAssignmentUseCase",
]
