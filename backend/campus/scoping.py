"""Role scoping for the read surface.

student -> own rows, teacher -> rows of owned classes, admin -> everything.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from backend.campus.errors import Forbidden
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle


def require_role(principal: Principal, allowed: Iterable[Role], message: str = "Access denied") -> None:
    if principal.role not in set(allowed):
        raise Forbidden(message)


def require_class_access(oracle: RoleOwnershipOracle, principal: Principal, class_id: str) -> None:
    """Admins always pass; teachers must own the class; students never do."""
    if principal.is_admin:
        return
    if principal.role is Role.TEACHER and oracle.is_owner_of_class(principal.user_id, class_id):
        return
    raise Forbidden("You are not assigned to this class")


def visible_class_ids(oracle: RoleOwnershipOracle, principal: Principal) -> Optional[List[str]]:
    """Class ids a staff member may read; None means unrestricted (admin)."""
    if principal.is_admin:
        return None
    require_role(principal, (Role.TEACHER,))
    return oracle.owned_class_ids(principal.user_id)


__all__ = ["require_class_access", "require_role", "visible_class_ids"]
