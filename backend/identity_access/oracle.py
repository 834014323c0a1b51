"""
Role & ownership queries for CampusFlow principals.

Every answer is re-derived from persisted state on each call. Nothing is cached
between requests, so revoking a role or a teacher-class assignment takes
effect on the very next request.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from backend.campus.errors import NotFound, RoleNotFound, StudentRecordNotFound
from backend.identity_access.domain import Identity, Principal, Role

logger = logging.getLogger("campusflow.identity")


class OracleRepo(Protocol):
    def get_role(self, user_id: str) -> Optional[str]: ...

    def teacher_in_class(self, teacher_id: str, class_id: str) -> bool: ...

    def list_teacher_class_ids(self, teacher_id: str) -> List[str]: ...

    def find_student_by_email(self, email: str) -> Optional[Dict[str, Any]]: ...

    def get_assignment(self, assignment_id: str) -> Optional[Dict[str, Any]]: ...

    def get_test(self, test_id: str) -> Optional[Dict[str, Any]]: ...

    def get_mark(self, mark_id: str) -> Optional[Dict[str, Any]]: ...

    def get_subject(self, subject_id: str) -> Optional[Dict[str, Any]]: ...

    def is_enrolled(self, student_id: str, class_id: str) -> bool: ...


class RoleOwnershipOracle:
    def __init__(self, repo: OracleRepo) -> None:
        self._repo = repo

    def resolve_role(self, user_id: str) -> Role:
        """Return the caller's single role; a missing or unknown row is RoleNotFound."""
        raw = self._repo.get_role(user_id)
        if not raw:
            logger.info("No role row for user=%s", user_id[-6:])
            raise RoleNotFound()
        try:
            return Role.parse(raw)
        except ValueError:
            logger.warning("Unknown role value for user=%s", user_id[-6:])
            raise RoleNotFound() from None

    def principal_for(self, identity: Identity) -> Principal:
        return Principal(user_id=identity.user_id, email=identity.email, role=self.resolve_role(identity.user_id))

    def is_owner_of_class(self, user_id: str, class_id: str) -> bool:
        return bool(self._repo.teacher_in_class(user_id, class_id))

    def owned_class_ids(self, user_id: str) -> List[str]:
        return list(self._repo.list_teacher_class_ids(user_id))

    def is_owner_of_assignment(self, principal: Principal, assignment_id: str) -> bool:
        row = self._repo.get_assignment(assignment_id)
        if row is None:
            raise NotFound("Assignment not found")
        return principal.is_admin or row.get("created_by") == principal.user_id

    def is_owner_of_test(self, principal: Principal, test_id: str) -> bool:
        row = self._repo.get_test(test_id)
        if row is None:
            raise NotFound("Test not found")
        return principal.is_admin or row.get("created_by") == principal.user_id

    def is_owner_of_mark(self, principal: Principal, mark_id: str) -> bool:
        row = self._repo.get_mark(mark_id)
        if row is None:
            raise NotFound("Mark not found")
        return principal.is_admin or row.get("uploaded_by") == principal.user_id

    def is_enrolled(self, student_id: str, class_id: str) -> bool:
        return bool(self._repo.is_enrolled(student_id, class_id))

    def load_subject(self, subject_id: str) -> Dict[str, Any]:
        row = self._repo.get_subject(subject_id)
        if row is None:
            raise NotFound("Subject not found")
        return row

    def load_resource(self, resource: str, resource_id: str) -> Dict[str, Any]:
        """Load an assignment or test row, raising NotFound when absent."""
        loader = {"assignment": self._repo.get_assignment, "test": self._repo.get_test}[resource]
        row = loader(resource_id)
        if row is None:
            raise NotFound(f"{resource.capitalize()} not found")
        return row

    def resolve_student_identity(self, principal: Principal) -> str:
        """Return the roster student id whose email matches the principal's email.

        The roster predates the auth system; rows are linked only through a
        case-insensitive email match.
        """
        row = self._repo.find_student_by_email(principal.email)
        if not row:
            logger.info("No roster row for user=%s", principal.user_id[-6:])
            raise StudentRecordNotFound()
        return str(row["id"])


__all__ = ["OracleRepo", "RoleOwnershipOracle"]
