"""Class announcements with fanout to every enrolled student."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from backend.campus.errors import NotFound
from backend.campus.gate import ClassScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_class_access, require_role
from backend.campus.validation import require_id, require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import EnrolledStudents, Notice, NotificationType

TITLE_MAX = 200


class AnnouncementsRepoProtocol(Protocol):
    def get_class(self, class_id: str) -> Optional[dict]: ...

    def create_announcement(self, *, class_id: str, title: str, body: str, created_by: str) -> dict: ...

    def list_announcements(self, class_ids: Iterable[str]) -> List[dict]: ...

    def list_class_ids_for_student(self, student_id: str) -> List[str]: ...


def _validate(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload = payload or {}
    return {
        "class_id": require_id(payload, "classId"),
        "title": require_text(payload, "title", max_len=TITLE_MAX),
        "body": require_text(payload, "body"),
    }


@dataclass
class AnnouncementsService:
    repo: AnnouncementsRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def create(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        request = MutationRequest(
            kind=OperationKind.CREATE_ANNOUNCEMENT,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )

        def check(ctx: GateContext) -> None:
            if self.repo.get_class(ctx.payload["class_id"]) is None:
                raise NotFound("Class not found")

        def persist(ctx: GateContext) -> dict:
            return self.repo.create_announcement(created_by=principal.user_id, **ctx.payload)

        def notify(ctx: GateContext, row: dict):
            yield EnrolledStudents(row["class_id"]), Notice(
                title="New Announcement",
                message=row["title"],
                type=NotificationType.ANNOUNCEMENT,
                link="/student/announcements",
            )

        return self.gate.execute(request, validate=_validate, check=check, persist=persist, notify=notify)

    def for_class(self, principal: Principal, class_id: str) -> List[dict]:
        require_class_access(self.oracle, principal, class_id)
        return self.repo.list_announcements([class_id])

    def for_student(self, principal: Principal) -> List[dict]:
        require_role(principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self.oracle.resolve_student_identity(principal)
        class_ids = self.repo.list_class_ids_for_student(student_id)
        if not class_ids:
            return []
        return self.repo.list_announcements(class_ids)


__all__ = ["AnnouncementsService", "TITLE_MAX"]
