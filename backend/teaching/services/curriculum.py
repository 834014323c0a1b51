"""Subjects, exams, and the teacher's class overview."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from backend.campus.errors import NotFound
from backend.campus.gate import ClassScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_class_access, require_role, visible_class_ids
from backend.campus.validation import positive_int, require_id, require_text
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle

DEFAULT_MAX_MARKS = 100


class CurriculumRepoProtocol(Protocol):
    def get_class(self, class_id: str) -> Optional[dict]: ...

    def create_subject(self, *, class_id: str, name: str) -> dict: ...

    def list_subjects(self, class_id: str) -> List[dict]: ...

    def create_exam(self, *, class_id: str, name: str, max_marks: int) -> dict: ...

    def list_exams(self, class_id: str) -> List[dict]: ...

    def list_enrolled_student_ids(self, class_id: str) -> List[str]: ...

    def count_distinct_students(self, class_ids: Sequence[str]) -> int: ...

    def list_students(self, *, offset: int, limit: int, student_ids=None) -> Tuple[List[dict], int]: ...


@dataclass
class CurriculumService:
    repo: CurriculumRepoProtocol
    gate: MutationGate
    oracle: RoleOwnershipOracle

    def _require_class(self, ctx: GateContext) -> None:
        if self.repo.get_class(ctx.payload["class_id"]) is None:
            raise NotFound("Class not found")

    def create_subject(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            raw = raw or {}
            return {"class_id": require_id(raw, "classId"), "name": require_text(raw, "name", max_len=120)}

        request = MutationRequest(
            kind=OperationKind.CREATE_SUBJECT,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )
        return self.gate.execute(
            request,
            validate=validate,
            check=self._require_class,
            persist=lambda ctx: self.repo.create_subject(**ctx.payload),
        )

    def create_exam(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        def validate(raw: Dict[str, Any]) -> Dict[str, Any]:
            raw = raw or {}
            max_marks = raw.get("maxMarks")
            return {
                "class_id": require_id(raw, "classId"),
                "name": require_text(raw, "name", max_len=120),
                "max_marks": DEFAULT_MAX_MARKS if max_marks is None else positive_int(max_marks, "maxMarks"),
            }

        request = MutationRequest(
            kind=OperationKind.CREATE_EXAM,
            actor=principal,
            scope=lambda p: ClassScope(p["class_id"]),
            payload=payload,
        )
        return self.gate.execute(
            request,
            validate=validate,
            check=self._require_class,
            persist=lambda ctx: self.repo.create_exam(**ctx.payload),
        )

    def subjects(self, principal: Principal, class_id: str) -> List[dict]:
        require_class_access(self.oracle, principal, class_id)
        return self.repo.list_subjects(class_id)

    def exams(self, principal: Principal, class_id: str) -> List[dict]:
        require_class_access(self.oracle, principal, class_id)
        return self.repo.list_exams(class_id)

    def teacher_stats(self, principal: Principal) -> Dict[str, int]:
        require_role(principal, (Role.TEACHER,), "Access denied. Teacher role required.")
        class_ids = self.oracle.owned_class_ids(principal.user_id)
        return {"totalClasses": len(class_ids), "totalStudents": self.repo.count_distinct_students(class_ids)}

    def my_students(self, principal: Principal) -> List[dict]:
        """Roster rows enrolled in any class the caller can see."""
        class_ids = visible_class_ids(self.oracle, principal)
        if class_ids is None:
            rows, _ = self.repo.list_students(offset=0, limit=10_000)
            return rows
        student_ids: List[str] = []
        for cid in class_ids:
            student_ids.extend(self.repo.list_enrolled_student_ids(cid))
        if not student_ids:
            return []
        unique = list(dict.fromkeys(student_ids))
        rows, _ = self.repo.list_students(offset=0, limit=len(unique), student_ids=unique)
        return rows


__all__ = ["CurriculumService", "DEFAULT_MAX_MARKS"]
