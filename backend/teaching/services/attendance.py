"""Attendance recording and summaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from backend.campus.errors import NotFound, ValidationError
from backend.campus.gate import ClassScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_class_access, require_role
from backend.campus.validation import non_empty_list, parse_day, require_id
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Notice, NotificationType, RosterStudents

STATUSES = ("present", "absent", "late")


class AttendanceRepoProtocol(Protocol):
    def get_class(self, class_id: str) -> Optional[dict]: ...

    def list_enrolled_student_ids(self, class_id: str) -> List[str]: ...

    def upsert_attendance(self, rows: Sequence[dict]) -> List[dict]: ...

    def list_attendance(
        self, *, class_id: Optional[str] = None, student_id: Optional[str] = None, date: Optional[str] = None
    ) -> List[dict]: ...


def _validate(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload = payload or {}
    class_id = require_id(payload, "classId")
    day = parse_day(payload.get("date"))
    entries = []
    seen = set()
    for item in non_empty_list(payload, "attendance"):
        if not isinstance(item, dict):
            raise ValidationError("Each attendance entry must be an object")
        student_id = require_id(item, "studentId")
        status = str(item.get("status") or "").strip().lower()
        if status not in STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
        if student_id in seen:
            raise ValidationError("Each student may appear only once per batch")
        seen.add(student_id)
        entries.append({"student_id": student_id, "status": status})
    return {"class_id": class_id, "date": day, "entries": entries}


def summarize(rows: Sequence[dict]) -> Dict[str, Any]:
    """Counts per status; late counts as attended."""
    total = len(rows)
    present = sum(1 for r in rows if r.get("status") == "present")
    late = sum(1 for r in rows if r.get("status") == "late")
    absent = sum(1 for r in rows if r.get("status") == "absent")
    pct = round((present + late) * 100.0 / total, 2) if total else 0.0
    return {"total": total, "present": present, "absent": absent, "late": late, "percentage": pct}


@dataclass
class AttendanceService:
    repo: AttendanceRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def record(self, principal: Principal, payload: Dict[str, Any]) -> List[dict]:
        """Record one day of attendance for a class.

        The batch is a single upsert keyed on (class, student, date); recording
        the same day again overwrites the statuses. Absent students are
        notified.
        """
        request = MutationRequest(
            kind=OperationKind.RECORD_ATTENDANCE,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )

        def check(ctx: GateContext) -> None:
            data = ctx.payload
            if self.repo.get_class(data["class_id"]) is None:
                raise NotFound("Class not found")
            enrolled = set(self.repo.list_enrolled_student_ids(data["class_id"]))
            for entry in data["entries"]:
                if entry["student_id"] not in enrolled:
                    raise ValidationError("Student is not enrolled in this class")

        def persist(ctx: GateContext) -> List[dict]:
            data = ctx.payload
            rows = [
                {
                    "class_id": data["class_id"],
                    "student_id": e["student_id"],
                    "date": data["date"],
                    "status": e["status"],
                    "marked_by": principal.user_id,
                }
                for e in data["entries"]
            ]
            return self.repo.upsert_attendance(rows)

        def notify(ctx: GateContext, rows: List[dict]):
            absent = tuple(r["student_id"] for r in rows if r["status"] == "absent")
            if absent:
                day = ctx.payload["date"]
                yield RosterStudents(absent), Notice(
                    title="Attendance Marked",
                    message=f"You were marked absent on {day}.",
                    type=NotificationType.WARNING,
                    link="/student/attendance",
                )

        return self.gate.execute(request, validate=_validate, check=check, persist=persist, notify=notify)

    def class_attendance(self, principal: Principal, class_id: str, *, date: Optional[str] = None) -> List[dict]:
        require_class_access(self.oracle, principal, class_id)
        day = parse_day(date) if date else None
        return self.repo.list_attendance(class_id=class_id, date=day)

    def my_attendance(self, principal: Principal) -> Dict[str, Any]:
        require_role(principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self.oracle.resolve_student_identity(principal)
        rows = self.repo.list_attendance(student_id=student_id)
        return {"records": rows, "summary": summarize(rows)}


__all__ = ["AttendanceService", "STATUSES", "summarize"]
