"""Teacher-side assignment use cases: create, list, review submissions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from backend.campus.errors import Forbidden, NotFound
from backend.campus.gate import ClassScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import optional_text, parse_instant, require_id, require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import EnrolledStudents, Notice, NotificationType


class AssignmentsRepoProtocol(Protocol):
    def get_class(self, class_id: str) -> Optional[dict]: ...

    def create_assignment(self, row: Dict[str, Any]) -> dict: ...

    def list_assignments(self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None) -> List[dict]: ...

    def list_assignment_submissions(self, *, assignment_id: Optional[str] = None, student_id: Optional[str] = None) -> List[dict]: ...


def _validate(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload = payload or {}
    return {
        "title": require_text(payload, "title", max_len=200),
        "description": optional_text(payload, "description", max_len=10_000),
        "class_id": require_id(payload, "classId"),
        "deadline": parse_instant(payload, "deadline").isoformat(),
    }


@dataclass
class AssignmentsService:
    repo: AssignmentsRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def create(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        request = MutationRequest(
            kind=OperationKind.CREATE_ASSIGNMENT,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )

        def check(ctx: GateContext) -> None:
            if self.repo.get_class(ctx.payload["class_id"]) is None:
                raise NotFound("Class not found")

        def persist(ctx: GateContext) -> dict:
            return self.repo.create_assignment({**ctx.payload, "created_by": principal.user_id})

        def notify(ctx: GateContext, row: dict):
            yield EnrolledStudents(row["class_id"]), Notice(
                title="New Assignment",
                message=f"Task: {row['title']}",
                type=NotificationType.ASSIGNMENT,
                link="/student/assignments",
            )

        return self.gate.execute(request, validate=_validate, check=check, persist=persist, notify=notify)

    def list_for_teacher(self, principal: Principal) -> List[dict]:
        require_role(principal, (Role.TEACHER, Role.ADMIN), "Access denied. Teacher role required.")
        if principal.is_admin:
            return self.repo.list_assignments()
        return self.repo.list_assignments(created_by=principal.user_id)

    def submissions(self, principal: Principal, assignment_id: str) -> List[dict]:
        require_role(principal, (Role.TEACHER, Role.ADMIN), "Access denied. Teacher role required.")
        if not self.oracle.is_owner_of_assignment(principal, assignment_id):
            raise Forbidden("Only the assignment creator can view submissions")
        return self.repo.list_assignment_submissions(assignment_id=assignment_id)


__all__ = ["AssignmentsService"]
