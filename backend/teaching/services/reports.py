"""Performance reports computed from a student's marks and attendance in a class."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from backend.campus.errors import NotFound, ValidationError
from backend.campus.gate import ClassScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import optional_text, require_id, require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Notice, NotificationType, RosterStudents
from backend.teaching.services.attendance import summarize


class ReportsRepoProtocol(Protocol):
    def get_class(self, class_id: str) -> Optional[dict]: ...

    def get_student(self, student_id: str) -> Optional[dict]: ...

    def is_enrolled(self, student_id: str, class_id: str) -> bool: ...

    def list_marks(self, *, student_id: Optional[str] = None, class_id: Optional[str] = None, exam_id=None) -> List[dict]: ...

    def list_attendance(self, *, class_id: Optional[str] = None, student_id: Optional[str] = None, date=None) -> List[dict]: ...

    def create_performance_report(self, row: Dict[str, Any]) -> dict: ...

    def list_performance_reports(self, student_id: str) -> List[dict]: ...


def mark_percentages(marks: Sequence[dict]) -> List[float]:
    out = []
    for m in marks:
        max_marks = m.get("max_marks") or 0
        if max_marks:
            out.append(float(m.get("marks_obtained") or 0) * 100.0 / float(max_marks))
    return out


def average(values: Sequence[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


@dataclass
class ReportsService:
    repo: ReportsRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def create(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            raw = raw or {}
            return {
                "student_id": require_id(raw, "studentId"),
                "class_id": require_id(raw, "classId"),
                "period": require_text(raw, "period", max_len=40),
                "remarks": optional_text(raw, "remarks", max_len=2000),
            }

        def check(ctx: GateContext) -> None:
            data = ctx.payload
            if self.repo.get_class(data["class_id"]) is None:
                raise NotFound("Class not found")
            if self.repo.get_student(data["student_id"]) is None:
                raise NotFound("Student not found")
            if not self.repo.is_enrolled(data["student_id"], data["class_id"]):
                raise ValidationError("Student is not enrolled in this class")

        def persist(ctx: GateContext) -> dict:
            data = ctx.payload
            marks = self.repo.list_marks(student_id=data["student_id"], class_id=data["class_id"])
            attendance = summarize(self.repo.list_attendance(class_id=data["class_id"], student_id=data["student_id"]))
            row = {
                **data,
                "avg_marks": average(mark_percentages(marks)),
                "attendance_pct": attendance["percentage"],
                "total_exams": len(marks),
                "total_present": attendance["present"] + attendance["late"],
                "total_absent": attendance["absent"],
                "created_by": principal.user_id,
            }
            return self.repo.create_performance_report(row)

        def notify(ctx: GateContext, row: dict):
            yield RosterStudents((row["student_id"],)), Notice(
                title="Performance Report Available",
                message=f"Your performance report for {row['period']} has been generated.",
                type=NotificationType.INFO,
                link="/student/performance",
            )

        request = MutationRequest(
            kind=OperationKind.CREATE_PERFORMANCE_REPORT,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )
        return self.gate.execute(request, validate=validate, check=check, persist=persist, notify=notify)

    def my_reports(self, principal: Principal) -> List[dict]:
        require_role(principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self.oracle.resolve_student_identity(principal)
        return self.repo.list_performance_reports(student_id)


__all__ = ["ReportsService", "average", "mark_percentages"]
