"""Roster (the `students` table) management.

Roster rows are not auth users. They are linked to an account only when the
emails match, so the email is normalized to lower case on every write.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

from backend.campus.errors import NotFound, ValidationError
from backend.campus.gate import GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import optional_text, page_meta, pagination, require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RosterRepoProtocol(Protocol):
    def create_student(self, *, name: str, email: str, created_by: Optional[str]) -> dict: ...

    def get_student(self, student_id: str) -> Optional[dict]: ...

    def list_students(self, *, offset: int, limit: int, student_ids=None) -> Tuple[List[dict], int]: ...

    def update_student(self, student_id: str, *, fields: Dict[str, Any]) -> Optional[dict]: ...

    def delete_student(self, student_id: str) -> bool: ...


def _email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    email = value.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("email must be a valid email address")
    return email


@dataclass
class RosterService:
    repo: RosterRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def create(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            raw = raw or {}
            name = require_text(raw, "name", max_len=120)
            return {"name": name, "email": _email(require_text(raw, "email", max_len=254))}

        request = MutationRequest(kind=OperationKind.MANAGE_ROSTER, actor=principal, payload=payload)
        return self.gate.execute(
            request,
            validate=validate,
            persist=lambda ctx: self.repo.create_student(**ctx.payload, created_by=principal.user_id),
        )

    def list(self, principal: Principal, *, page: Any = None, limit: Any = None) -> Dict[str, Any]:
        require_role(principal, (Role.ADMIN, Role.TEACHER))
        p, lim, offset = pagination(page, limit)
        rows, total = self.repo.list_students(offset=offset, limit=lim)
        return {"students": rows, "meta": page_meta(total, p, lim)}

    def get(self, principal: Principal, student_id: str) -> dict:
        require_role(principal, (Role.ADMIN, Role.TEACHER))
        row = self.repo.get_student(student_id)
        if row is None:
            raise NotFound("Student not found")
        return row

    def update(self, principal: Principal, student_id: str, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            raw = raw or {}
            fields = {
                "name": optional_text(raw, "name", max_len=120),
                "email": _email(optional_text(raw, "email", max_len=254)),
            }
            if all(v is None for v in fields.values()):
                raise ValidationError("Nothing to update")
            return fields

        def persist(ctx: GateContext) -> dict:
            row = self.repo.update_student(student_id, fields=ctx.payload)
            if row is None:
                raise NotFound("Student not found")
            return row

        request = MutationRequest(kind=OperationKind.MANAGE_ROSTER, actor=principal, payload=payload)
        return self.gate.execute(request, validate=validate, persist=persist)

    def delete(self, principal: Principal, student_id: str) -> None:
        def persist(ctx: GateContext) -> None:
            if not self.repo.delete_student(student_id):
                raise NotFound("Student not found")

        self.gate.execute(MutationRequest(kind=OperationKind.MANAGE_ROSTER, actor=principal), persist=persist)


__all__ = ["RosterService"]
