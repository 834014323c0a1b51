"""Enrollment of roster students into classes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

from backend.campus.errors import NotFound
from backend.campus.gate import ClassScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_class_access
from backend.campus.validation import page_meta, pagination, require_id
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Notice, NotificationType, RosterStudents


class EnrollmentsRepoProtocol(Protocol):
    def get_class(self, class_id: str) -> Optional[dict]: ...

    def get_student(self, student_id: str) -> Optional[dict]: ...

    def create_enrollment(self, *, student_id: str, class_id: str) -> dict: ...

    def delete_enrollment(self, *, student_id: str, class_id: str) -> bool: ...

    def list_enrollments_for_class(self, class_id: str, *, offset: int, limit: int) -> Tuple[List[dict], int]: ...

    def list_enrollments_for_student(self, student_id: str) -> List[dict]: ...


def _validate(raw: Dict[str, Any]) -> Dict[str, str]:
    raw = raw or {}
    return {"student_id": require_id(raw, "studentId"), "class_id": require_id(raw, "classId")}


@dataclass
class EnrollmentsService:
    repo: EnrollmentsRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def enroll(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        """Enroll a roster student; a repeat enrollment is a Conflict.

        The student is told which class they joined when they have an account.
        """

        def check(ctx: GateContext) -> None:
            klass = self.repo.get_class(ctx.payload["class_id"])
            if klass is None:
                raise NotFound("Class not found")
            if self.repo.get_student(ctx.payload["student_id"]) is None:
                raise NotFound("Student not found")
            ctx.facts["class"] = klass

        def notify(ctx: GateContext, row: dict):
            yield RosterStudents((row["student_id"],)), Notice(
                title="Enrollment Successful",
                message=f"You have been enrolled in {ctx.facts['class']['name']}.",
                type=NotificationType.SUCCESS,
                link="/student/classes",
            )

        request = MutationRequest(
            kind=OperationKind.CREATE_ENROLLMENT,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )
        return self.gate.execute(
            request,
            validate=_validate,
            check=check,
            persist=lambda ctx: self.repo.create_enrollment(**ctx.payload),
            notify=notify,
        )

    def unenroll(self, principal: Principal, student_id: str, class_id: str) -> None:
        def persist(ctx: GateContext) -> None:
            if not self.repo.delete_enrollment(**ctx.payload):
                raise NotFound("Enrollment not found")

        request = MutationRequest(
            kind=OperationKind.DELETE_ENROLLMENT,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload={"studentId": student_id, "classId": class_id},
        )
        self.gate.execute(request, validate=_validate, persist=persist)

    def for_class(self, principal: Principal, class_id: str, *, page: Any = None, limit: Any = None) -> Dict[str, Any]:
        require_class_access(self.oracle, principal, class_id)
        p, lim, offset = pagination(page, limit)
        rows, total = self.repo.list_enrollments_for_class(class_id, offset=offset, limit=lim)
        return {"enrollments": rows, "meta": page_meta(total, p, lim)}

    def for_student(self, principal: Principal, student_id: str) -> List[dict]:
        """Admins see anyone; students only themselves; teachers the owned-class subset."""
        if principal.role is Role.STUDENT:
            if self.oracle.resolve_student_identity(principal) != student_id:
                raise NotFound("Student not found")
            return self.repo.list_enrollments_for_student(student_id)
        rows = self.repo.list_enrollments_for_student(student_id)
        if principal.is_admin:
            return rows
        owned = set(self.oracle.owned_class_ids(principal.user_id))
        return [r for r in rows if r["class_id"] in owned]


__all__ = ["EnrollmentsService"]
