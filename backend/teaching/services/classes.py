"""Class lifecycle and role-scoped class listings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from backend.campus.errors import Forbidden, NotFound
from backend.campus.gate import GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle


class ClassesRepoProtocol(Protocol):
    def create_class(self, *, name: str, created_by: Optional[str]) -> dict: ...

    def get_class(self, class_id: str) -> Optional[dict]: ...

    def list_classes(self, *, class_ids: Optional[Iterable[str]] = None) -> List[dict]: ...

    def delete_class(self, class_id: str) -> bool: ...

    def list_class_ids_for_student(self, student_id: str) -> List[str]: ...


@dataclass
class ClassesService:
    repo: ClassesRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def create(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        request = MutationRequest(kind=OperationKind.CREATE_CLASS, actor=principal, payload=payload)
        return self.gate.execute(
            request,
            validate=lambda raw: {"name": require_text(raw or {}, "name", max_len=120)},
            persist=lambda ctx: self.repo.create_class(name=ctx.payload["name"], created_by=principal.user_id),
        )

    def delete(self, principal: Principal, class_id: str) -> None:
        def check(ctx: GateContext) -> None:
            if self.repo.get_class(class_id) is None:
                raise NotFound("Class not found")

        request = MutationRequest(kind=OperationKind.DELETE_CLASS, actor=principal)
        self.gate.execute(request, check=check, persist=lambda ctx: self.repo.delete_class(class_id))

    def visible(self, principal: Principal) -> List[dict]:
        """Admin: every class; teacher: owned classes; student: enrolled classes."""
        if principal.is_admin:
            return self.repo.list_classes()
        if principal.role is Role.TEACHER:
            class_ids = self.oracle.owned_class_ids(principal.user_id)
        else:
            student_id = self.oracle.resolve_student_identity(principal)
            class_ids = self.repo.list_class_ids_for_student(student_id)
        if not class_ids:
            return []
        return self.repo.list_classes(class_ids=class_ids)

    def teacher_classes(self, principal: Principal) -> List[dict]:
        require_role(principal, (Role.TEACHER,), "Access denied. Teacher role required.")
        class_ids = self.oracle.owned_class_ids(principal.user_id)
        if not class_ids:
            return []
        return self.repo.list_classes(class_ids=class_ids)

    def get(self, principal: Principal, class_id: str) -> dict:
        row = self.repo.get_class(class_id)
        if row is None:
            raise NotFound("Class not found")
        if principal.is_admin:
            return row
        if principal.role is Role.TEACHER:
            if self.oracle.is_owner_of_class(principal.user_id, class_id):
                return row
            raise Forbidden("You are not assigned to this class")
        student_id = self.oracle.resolve_student_identity(principal)
        if not self.oracle.is_enrolled(student_id, class_id):
            raise Forbidden("You are not enrolled in this class")
        return row


__all__ = ["ClassesService"]
