"""Administrative identity operations: roles, teacher-class assignments, direct notices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from backend.campus.errors import NotFound, ValidationError
from backend.campus.gate import GateContext, MutationGate, MutationRequest, NotSelfScope, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import optional_text, require_id, require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.service import NotificationInbox

logger = logging.getLogger("campusflow.identity")


class AdminRepoProtocol(Protocol):
    def get_role(self, user_id: str) -> Optional[str]: ...

    def set_role(self, *, user_id: str, role: str) -> dict: ...

    def list_users(self, *, role: Optional[str] = None) -> List[dict]: ...

    def get_class(self, class_id: str) -> Optional[dict]: ...

    def assign_teacher(self, *, teacher_id: str, class_id: str) -> dict: ...

    def unassign_teacher(self, *, teacher_id: str, class_id: str) -> bool: ...


def _parse_role(value: Any) -> Role:
    try:
        return Role.parse(str(value or ""))
    except ValueError:
        raise ValidationError("role must be one of: admin, teacher, student") from None


@dataclass
class AdminService:
    repo: AdminRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle
    inbox: NotificationInbox

    def my_role(self, principal: Principal) -> Dict[str, str]:
        return {"role": principal.role.value}

    def list_users(self, principal: Principal, *, role: Optional[str] = None) -> List[dict]:
        require_role(principal, (Role.ADMIN,), "Access denied. Admin role required.")
        wanted = _parse_role(role).value if role else None
        return self.repo.list_users(role=wanted)

    def change_role(self, principal: Principal, user_id: str, payload: Dict[str, Any]) -> dict:
        """Set a user's single role. Admins cannot change their own role."""

        def persist(ctx: GateContext) -> dict:
            row = self.repo.set_role(user_id=user_id, role=ctx.payload.value)
            logger.info("Role changed user=%s role=%s by=%s", user_id[-6:], ctx.payload.value, principal.user_id[-6:])
            return row

        request = MutationRequest(
            kind=OperationKind.CHANGE_ROLE,
            actor=principal,
            scope=NotSelfScope(user_id),
            payload=payload,
        )
        return self.gate.execute(request, validate=lambda raw: _parse_role((raw or {}).get("role")), persist=persist)

    def assign_teacher(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, str]:
            raw = raw or {}
            return {"teacher_id": require_id(raw, "teacherId"), "class_id": require_id(raw, "classId")}

        def check(ctx: GateContext) -> None:
            if self.repo.get_class(ctx.payload["class_id"]) is None:
                raise NotFound("Class not found")
            if self.repo.get_role(ctx.payload["teacher_id"]) != Role.TEACHER.value:
                raise ValidationError("Target user does not have the teacher role")

        request = MutationRequest(kind=OperationKind.ASSIGN_TEACHER, actor=principal, payload=payload)
        return self.gate.execute(
            request, validate=validate, check=check, persist=lambda ctx: self.repo.assign_teacher(**ctx.payload)
        )

    def unassign_teacher(self, principal: Principal, teacher_id: str, class_id: str) -> None:
        def persist(ctx: GateContext) -> None:
            if not self.repo.unassign_teacher(teacher_id=teacher_id, class_id=class_id):
                raise NotFound("Assignment not found")

        self.gate.execute(MutationRequest(kind=OperationKind.ASSIGN_TEACHER, actor=principal), persist=persist)

    def send_notification(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            raw = raw or {}
            return {
                "user_id": require_id(raw, "userId"),
                "title": require_text(raw, "title", max_len=200),
                "message": require_text(raw, "message", max_len=2000),
                "type": optional_text(raw, "type") or "info",
                "link": optional_text(raw, "link", max_len=500),
            }

        request = MutationRequest(kind=OperationKind.SEND_NOTIFICATION, actor=principal, payload=payload)
        return self.gate.execute(request, validate=validate, persist=lambda ctx: self.inbox.send(**ctx.payload))


__all__ = ["AdminService"]
