"""Marks use cases: single and bulk upload, correction, and scoped reads.

Every write goes through the mutation gate. Uploads notify the affected
students once the rows are stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from backend.campus.errors import NotFound, ValidationError
from backend.campus.gate import (
    ClassScope,
    GateContext,
    MarkScope,
    MutationGate,
    MutationRequest,
    OperationKind,
    SubjectClassScope,
)
from backend.campus.scoping import require_class_access, require_role
from backend.campus.validation import non_empty_list, non_negative_int, require_id
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Notice, NotificationType, RosterStudents


class MarksRepoProtocol(Protocol):
    def get_student(self, student_id: str) -> Optional[dict]: ...

    def get_exam(self, exam_id: str) -> Optional[dict]: ...

    def get_subject(self, subject_id: str) -> Optional[dict]: ...

    def get_mark(self, mark_id: str) -> Optional[dict]: ...

    def insert_marks(self, rows: Sequence[dict]) -> List[dict]: ...

    def update_mark(self, mark_id: str, *, marks_obtained: int) -> Optional[dict]: ...

    def list_marks(
        self, *, student_id: Optional[str] = None, class_id: Optional[str] = None, exam_id: Optional[str] = None
    ) -> List[dict]: ...


def _marks_notice(exam: dict, subject: dict) -> Notice:
    return Notice(
        title="Marks Updated",
        message=f"Your marks for {exam.get('name')} ({subject.get('name')}) have been uploaded.",
        type=NotificationType.SUCCESS,
        link="/student/marks",
    )


def _check_bound(marks_obtained: int, exam: dict) -> None:
    max_marks = int(exam.get("max_marks") or 0)
    if marks_obtained > max_marks:
        raise ValidationError(f"Marks obtained ({marks_obtained}) cannot exceed max marks ({max_marks})")


def _validate_single(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload = payload or {}
    return {
        "student_id": require_id(payload, "studentId"),
        "exam_id": require_id(payload, "examId"),
        "subject_id": require_id(payload, "subjectId"),
        "marks_obtained": non_negative_int(payload.get("marksObtained"), "marksObtained"),
    }


def _validate_bulk(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload = payload or {}
    out = {
        "class_id": require_id(payload, "classId"),
        "exam_id": require_id(payload, "examId"),
        "subject_id": require_id(payload, "subjectId"),
    }
    entries = []
    seen = set()
    for item in non_empty_list(payload, "marks"):
        if not isinstance(item, dict):
            raise ValidationError("Each mark entry must be an object")
        student_id = require_id(item, "studentId")
        if student_id in seen:
            raise ValidationError("Each student may appear only once per batch")
        seen.add(student_id)
        entries.append(
            {"student_id": student_id, "marks_obtained": non_negative_int(item.get("marksObtained"), "marksObtained")}
        )
    out["entries"] = entries
    return out


@dataclass
class MarksService:
    repo: MarksRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    # --- Writes ------------------------------------------------------------------

    def upload_mark(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        request = MutationRequest(
            kind=OperationKind.UPLOAD_MARKS,
            actor=principal,
            scope=lambda p: SubjectClassScope(p["subject_id"]),
            payload=payload,
        )

        def check(ctx: GateContext) -> None:
            data = ctx.payload
            subject = ctx.facts["subject"]
            if self.repo.get_student(data["student_id"]) is None:
                raise NotFound("Student not found")
            exam = self.repo.get_exam(data["exam_id"])
            if exam is None:
                raise NotFound("Exam not found")
            if str(exam["class_id"]) != str(subject["class_id"]):
                raise ValidationError("Exam and subject belong to different classes")
            _check_bound(data["marks_obtained"], exam)
            ctx.facts["exam"] = exam

        def persist(ctx: GateContext) -> dict:
            return self.repo.insert_marks([{**ctx.payload, "uploaded_by": principal.user_id}])[0]

        def notify(ctx: GateContext, row: dict):
            yield RosterStudents((row["student_id"],)), _marks_notice(ctx.facts["exam"], ctx.facts["subject"])

        return self.gate.execute(request, validate=_validate_single, check=check, persist=persist, notify=notify)

    def upload_marks_bulk(self, principal: Principal, payload: Dict[str, Any]) -> List[dict]:
        """Insert a whole batch for one exam and subject; one bad row fails all."""
        request = MutationRequest(
            kind=OperationKind.UPLOAD_MARKS_BULK,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )

        def check(ctx: GateContext) -> None:
            data = ctx.payload
            subject = self.repo.get_subject(data["subject_id"])
            if subject is None:
                raise NotFound("Subject not found")
            exam = self.repo.get_exam(data["exam_id"])
            if exam is None:
                raise NotFound("Exam not found")
            if str(subject["class_id"]) != data["class_id"]:
                raise ValidationError("Subject does not belong to this class")
            if str(exam["class_id"]) != data["class_id"]:
                raise ValidationError("Exam does not belong to this class")
            for entry in data["entries"]:
                if self.repo.get_student(entry["student_id"]) is None:
                    raise NotFound("Student not found")
                _check_bound(entry["marks_obtained"], exam)
            ctx.facts.update(subject=subject, exam=exam)

        def persist(ctx: GateContext) -> List[dict]:
            data = ctx.payload
            rows = [
                {
                    "student_id": e["student_id"],
                    "exam_id": data["exam_id"],
                    "subject_id": data["subject_id"],
                    "marks_obtained": e["marks_obtained"],
                    "uploaded_by": principal.user_id,
                }
                for e in data["entries"]
            ]
            return self.repo.insert_marks(rows)

        def notify(ctx: GateContext, rows: List[dict]):
            students = tuple(r["student_id"] for r in rows)
            yield RosterStudents(students), _marks_notice(ctx.facts["exam"], ctx.facts["subject"])

        return self.gate.execute(request, validate=_validate_bulk, check=check, persist=persist, notify=notify)

    def update_mark(self, principal: Principal, mark_id: str, payload: Dict[str, Any]) -> dict:
        request = MutationRequest(
            kind=OperationKind.UPDATE_MARK, actor=principal, scope=MarkScope(mark_id), payload=payload
        )

        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            return {"marks_obtained": non_negative_int((raw or {}).get("marksObtained"), "marksObtained")}

        def check(ctx: GateContext) -> None:
            mark = self.repo.get_mark(mark_id)
            exam = self.repo.get_exam(mark["exam_id"]) if mark else None
            if exam is None:
                raise NotFound("Exam not found")
            _check_bound(ctx.payload["marks_obtained"], exam)

        def persist(ctx: GateContext) -> dict:
            row = self.repo.update_mark(mark_id, marks_obtained=ctx.payload["marks_obtained"])
            if row is None:
                raise NotFound("Mark not found")
            return row

        return self.gate.execute(request, validate=validate, check=check, persist=persist)

    # --- Reads -------------------------------------------------------------------

    def my_marks(self, principal: Principal) -> List[dict]:
        require_role(principal, (Role.STUDENT,), "Only students can view their own marks")
        student_id = self.oracle.resolve_student_identity(principal)
        return self.repo.list_marks(student_id=student_id)

    def class_marks(self, principal: Principal, class_id: str) -> List[dict]:
        require_class_access(self.oracle, principal, class_id)
        return self.repo.list_marks(class_id=class_id)

    def exam_marks(self, principal: Principal, exam_id: str) -> List[dict]:
        require_role(principal, (Role.TEACHER, Role.ADMIN))
        exam = self.repo.get_exam(exam_id)
        if exam is None:
            raise NotFound("Exam not found")
        require_class_access(self.oracle, principal, str(exam["class_id"]))
        return self.repo.list_marks(exam_id=exam_id)


__all__ = ["MarksService", "MarksRepoProtocol"]
